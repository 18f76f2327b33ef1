"""FDI two-digit tooth numbering helpers."""

from typing import Dict

TOOTH_NAMES: Dict[int, str] = {
    1: "Central Incisor",
    2: "Lateral Incisor",
    3: "Canine",
    4: "First Premolar",
    5: "Second Premolar",
    6: "First Molar",
    7: "Second Molar",
    8: "Third Molar (Wisdom)",
}

TOOTH_TYPES: Dict[int, str] = {
    1: "Incisor",
    2: "Incisor",
    3: "Canine",
    4: "Premolar",
    5: "Premolar",
    6: "Molar",
    7: "Molar",
    8: "Molar",
}

QUADRANT_NAMES: Dict[int, str] = {
    1: "Upper Right",
    2: "Upper Left",
    3: "Lower Left",
    4: "Lower Right",
}

UNKNOWN = "Unknown"


def quadrant_of(fdi_number: int) -> int:
    """Quadrant digit (1-4 for permanent teeth)."""
    return fdi_number // 10


def position_of(fdi_number: int) -> int:
    """Position within the quadrant (1 = central incisor, 8 = third molar)."""
    return fdi_number % 10


def tooth_name(fdi_number: int) -> str:
    return TOOTH_NAMES.get(position_of(fdi_number), UNKNOWN)


def tooth_type(fdi_number: int) -> str:
    return TOOTH_TYPES.get(position_of(fdi_number), UNKNOWN)


def quadrant_name(quadrant: int) -> str:
    return QUADRANT_NAMES.get(quadrant, UNKNOWN)


def describe_tooth(fdi_number: int) -> str:
    """Full anatomical description, e.g. ``Upper Right First Molar (#16)``."""
    return f"{quadrant_name(quadrant_of(fdi_number))} {tooth_name(fdi_number)} (#{fdi_number})"
