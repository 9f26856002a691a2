"""
Medical Test Catalog.

Maps a spoken test request ("cbc", "knee mri", "colonscopy") onto the
clinic's catalog name. Exact and whole-word catalog hits score 0.95,
close misspellings caught by fuzzy matching score 0.85, and anything
else is kept as free text at 0.7.
"""

from __future__ import annotations

import re
from typing import Optional

from rapidfuzz import fuzz, process

from voice_intake.logging_config import get_logger
from voice_intake.schemas.fields import NormalizedValue

logger = get_logger(__name__)

CATALOG_CONFIDENCE = 0.95
FUZZY_CONFIDENCE = 0.85
FREE_TEXT_CONFIDENCE = 0.7
FUZZY_SCORE_CUTOFF = 88

# Catalog name -> spoken/typed variations.
MEDICAL_TESTS: dict[str, tuple[str, ...]] = {
    # Blood
    "Complete Blood Count (CBC)": ("cbc", "complete blood count", "blood count", "full blood count"),
    "Basic Metabolic Panel (BMP)": ("bmp", "basic metabolic panel", "metabolic panel", "chem 7", "chem7"),
    "Comprehensive Metabolic Panel (CMP)": ("cmp", "comprehensive metabolic panel", "chem 14", "chem14"),
    "Lipid Panel": ("lipid panel", "lipid profile", "cholesterol test", "cholesterol panel", "lipids"),
    "Hemoglobin A1C": ("a1c", "hba1c", "hemoglobin a1c", "glycated hemoglobin", "diabetes test"),
    "Thyroid Panel": ("thyroid panel", "thyroid test", "thyroid function", "t3", "t4", "thyroid"),
    "TSH": ("tsh", "thyroid stimulating hormone"),
    "Liver Function Test (LFT)": ("lft", "liver function", "liver panel", "liver test", "hepatic panel"),
    "Kidney Function Test": (
        "kidney function", "renal function", "kidney panel", "renal panel", "bun", "creatinine",
    ),
    "Vitamin D Test": ("vitamin d", "vit d", "25-hydroxy", "vitamin d test"),
    "Vitamin B12 Test": ("vitamin b12", "b12", "cobalamin"),
    "Iron Panel": ("iron panel", "iron test", "ferritin", "iron studies", "serum iron"),
    "Blood Glucose Test": ("blood glucose", "blood sugar", "fasting glucose", "glucose test"),
    "Prothrombin Time (PT/INR)": ("pt", "inr", "prothrombin", "coagulation test", "clotting test"),
    "PSA Test": ("psa", "prostate specific antigen", "prostate test"),
    "Urinalysis": ("urinalysis", "urine test", "urine analysis", "ua"),
    # Imaging
    "MRI": ("mri", "magnetic resonance", "magnetic resonance imaging"),
    "CT Scan": ("ct scan", "ct", "cat scan", "computed tomography"),
    "X-Ray": ("x-ray", "xray", "x ray", "radiograph"),
    "Ultrasound": ("ultrasound", "sonogram", "sonography"),
    "Mammogram": ("mammogram", "mammography", "breast imaging", "breast scan"),
    "DEXA Scan": ("dexa", "dxa", "bone density", "bone density scan", "bone scan"),
    "PET Scan": ("pet scan", "positron emission"),
    "Echocardiogram": ("echocardiogram", "echo", "heart ultrasound", "cardiac echo"),
    # Cardiac
    "ECG/EKG": ("ecg", "ekg", "electrocardiogram", "heart rhythm test"),
    "Stress Test": ("stress test", "treadmill test", "exercise test", "cardiac stress"),
    "Holter Monitor": ("holter", "holter monitor", "24 hour heart monitor"),
    # Procedures and screenings
    "Colonoscopy": ("colonoscopy", "colon screening", "colon exam"),
    "Endoscopy": ("endoscopy", "upper endoscopy", "egd", "upper gi"),
    "Biopsy": ("biopsy", "tissue sample"),
    "Pap Smear": ("pap smear", "pap test", "cervical screening", "pap"),
    # Allergy and infection
    "Allergy Test": ("allergy test", "allergy panel", "allergen test", "skin prick test"),
    "COVID-19 Test": ("covid test", "covid-19", "coronavirus test", "pcr test", "covid"),
    "STI Panel": ("sti test", "sti panel", "std test", "std panel", "sexually transmitted"),
    "HIV Test": ("hiv test", "hiv", "aids test"),
    # Specialty
    "Genetic Testing": ("genetic test", "dna test", "genetic screening", "genetics"),
    "Sleep Study": ("sleep study", "polysomnography", "sleep test", "sleep apnea test"),
    "Pulmonary Function Test": ("pulmonary function", "pft", "lung function", "spirometry", "breathing test"),
    # General
    "Blood Test": ("blood test", "blood work", "bloodwork", "lab work", "labs"),
    "Physical Exam": ("physical exam", "physical", "annual physical", "checkup", "check up"),
}

# Imaging words that combine with a body part ("knee mri" -> "Knee MRI").
IMAGING_MODALITIES: dict[str, str] = {
    "x-ray": "X-Ray",
    "xray": "X-Ray",
    "x ray": "X-Ray",
    "ct scan": "CT Scan",
    "cat scan": "CT Scan",
    "ct": "CT Scan",
    "mri": "MRI",
    "ultrasound": "Ultrasound",
    "sonogram": "Ultrasound",
}

BODY_PARTS = (
    "brain", "head", "chest", "lung", "heart", "abdominal", "abdomen", "knee",
    "shoulder", "back", "spine", "neck", "pelvic", "hip", "ankle", "wrist",
    "hand", "foot", "leg", "arm",
)

_VARIANT_TO_NAME: dict[str, str] = {}
for _name, _variations in MEDICAL_TESTS.items():
    _VARIANT_TO_NAME[_name.lower()] = _name
    for _variation in _variations:
        _VARIANT_TO_NAME.setdefault(_variation, _name)

# Short codes ("pt", "ua") only match exactly.
_CONTAINED_VARIANTS = sorted((v for v in _VARIANT_TO_NAME if len(v) >= 3), key=len, reverse=True)
_FUZZY_CHOICES = [v for v in _VARIANT_TO_NAME if len(v) >= 4]


def _word_pattern(phrase: str) -> re.Pattern:
    return re.compile(rf"(?<![a-z0-9]){re.escape(phrase)}(?![a-z0-9])")


_CONTAINED_PATTERNS = [(_word_pattern(v), v) for v in _CONTAINED_VARIANTS]
_MODALITY_PATTERNS = [
    (_word_pattern(k), v) for k, v in sorted(IMAGING_MODALITIES.items(), key=lambda kv: len(kv[0]), reverse=True)
]
_BODY_PART_PATTERNS = [(_word_pattern(p), p.capitalize()) for p in BODY_PARTS]


def imaging_with_body_part(lower: str) -> Optional[str]:
    """'mri of the knee' -> 'Knee MRI'; None unless both a body part and a modality are named."""
    modality = next((name for pattern, name in _MODALITY_PATTERNS if pattern.search(lower)), None)
    if modality is None:
        return None
    part = next((name for pattern, name in _BODY_PART_PATTERNS if pattern.search(lower)), None)
    if part is None:
        return None
    return f"{part} {modality}"


def find_medical_test(text: str) -> Optional[tuple[str, float]]:
    """Look a request up in the catalog. Returns (catalog name, confidence) or None."""
    lower = " ".join(text.lower().split())

    if lower in _VARIANT_TO_NAME:
        return _VARIANT_TO_NAME[lower], CATALOG_CONFIDENCE

    imaging = imaging_with_body_part(lower)
    if imaging:
        return imaging, CATALOG_CONFIDENCE

    for pattern, variant in _CONTAINED_PATTERNS:
        if pattern.search(lower):
            return _VARIANT_TO_NAME[variant], CATALOG_CONFIDENCE

    match = process.extractOne(lower, _FUZZY_CHOICES, scorer=fuzz.token_sort_ratio, score_cutoff=FUZZY_SCORE_CUTOFF)
    if match:
        variant, score, _ = match
        logger.debug("test_name_fuzzy_match", raw=text, variant=variant, score=round(score, 1))
        return _VARIANT_TO_NAME[variant], FUZZY_CONFIDENCE

    return None


def normalize_test_name(text: str) -> NormalizedValue:
    cleaned = " ".join(text.split())
    if len(cleaned) < 2:
        return NormalizedValue(cleaned, 0.3)

    found = find_medical_test(cleaned)
    if found:
        return NormalizedValue(*found)
    return NormalizedValue(cleaned[:1].upper() + cleaned[1:], FREE_TEXT_CONFIDENCE)
