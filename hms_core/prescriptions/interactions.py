# backend/hms_core/prescriptions/interactions.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable


@dataclass(frozen=True)
class KnownInteraction:
    drugs: tuple[str, str]
    severity: str
    description: str
    recommendation: str


KNOWN_INTERACTIONS: tuple[KnownInteraction, ...] = (
    KnownInteraction(("warfarin", "aspirin"), "MAJOR", "Increased bleeding risk", "Monitor coagulation closely"),
    KnownInteraction(
        ("simvastatin", "clarithromycin"), "MAJOR", "Increased risk of rhabdomyolysis", "Avoid concurrent use"
    ),
    KnownInteraction(("warfarin", "ibuprofen"), "MAJOR", "Increased bleeding risk", "Prefer paracetamol for pain"),
    KnownInteraction(
        ("lisinopril", "spironolactone"), "MODERATE", "Risk of hyperkalemia", "Monitor serum potassium"
    ),
    KnownInteraction(
        ("metformin", "contrast agent"),
        "MODERATE",
        "Risk of lactic acidosis",
        "Hold metformin around iodinated contrast procedures",
    ),
)


def _names_of(med) -> list[str]:
    if isinstance(med, str):
        return [med.lower()]
    if isinstance(med, dict):
        raw = [med.get("name"), med.get("generic_name")]
    else:
        raw = [getattr(med, "name", None), getattr(med, "generic_name", None)]
    return [n.lower() for n in raw if n]


def check_interactions(medications: Iterable) -> list[dict]:
    """
    medications: Medication instances, dicts with name/generic_name, or plain names.
    A drug matches when its name appears (case-insensitive) in a medication's
    name or generic name, so "Aspirin 81mg" matches "aspirin".
    """
    names: list[str] = []
    for med in medications:
        names.extend(_names_of(med))

    found = []
    for known in KNOWN_INTERACTIONS:
        if all(any(drug in n for n in names) for drug in known.drugs):
            found.append(
                {
                    "medications": list(known.drugs),
                    "severity": known.severity,
                    "description": known.description,
                    "recommendation": known.recommendation,
                }
            )
    return found
