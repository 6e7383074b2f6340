from __future__ import annotations

import datetime as _dt
import uuid
from threading import RLock
from typing import Any, Dict, List, Optional

from .contracts import Patient
from .errors import ValidationError


class InMemoryPatientStore:
    def __init__(self) -> None:
        self._lock = RLock()
        self._patients: Dict[str, Patient] = {}

    def add_patient(
        self,
        user_id: Optional[str],
        name: Optional[str],
        *,
        profile: Optional[Dict[str, Any]] = None,
        additional_info: Optional[Dict[str, Any]] = None,
    ) -> Patient:
        if not str(user_id or "").strip() or not str(name or "").strip():
            raise ValidationError("userId and name are required")

        fields = {key: value for key, value in (profile or {}).items() if value not in (None, "")}
        patient = Patient(
            id=str(uuid.uuid4()),
            user_id=str(user_id),
            name=str(name),
            additional_info=dict(additional_info or {}),
            created_at=_dt.datetime.now(_dt.timezone.utc).isoformat(),
            **fields,
        )
        with self._lock:
            self._patients[patient.id] = patient
        return patient.model_copy(deep=True)

    def get_patient(self, patient_id: str) -> Optional[Patient]:
        with self._lock:
            patient = self._patients.get(patient_id)
            return None if patient is None else patient.model_copy(deep=True)

    def list_patients_for_user(self, user_id: str) -> List[Patient]:
        with self._lock:
            return [p.model_copy(deep=True) for p in self._patients.values() if p.user_id == user_id]
