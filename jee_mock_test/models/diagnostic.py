"""
models/diagnostic.py

Non-fatal anomaly record (skipped answer-key row, missing key, malformed answer).
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict


class Diagnostic(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: str
    message: str
    question_id: Optional[int] = None
    question_number: Optional[int] = None
