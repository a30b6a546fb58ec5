"""
Grading Profiles Module v1.0.0
==============================
Detects what kind of API a document describes and selects the profile
(prerequisites, rule weights, category budgets) used to grade it.

Built-in profile types: SaaS, REST, GraphQL, Microservice, Custom.
"""

from .models import (
    Profile,
    ProfileRule,
    Prerequisites,
    DetectionResult,
    SCORING_CATEGORIES,
    category_from_prefix,
)
from .detection import detect_profile, UNKNOWN_PROFILE, SIGNATURES
from .manager import (
    ProfileManager,
    ProfileSelection,
    BUILTIN_PROFILES,
    validate_profile,
    get_profile_manager,
    reset_profile_manager,
)

__version__ = "1.0.0"
__all__ = [
    'Profile',
    'ProfileRule',
    'Prerequisites',
    'DetectionResult',
    'SCORING_CATEGORIES',
    'category_from_prefix',
    'detect_profile',
    'UNKNOWN_PROFILE',
    'SIGNATURES',
    'ProfileManager',
    'ProfileSelection',
    'BUILTIN_PROFILES',
    'validate_profile',
    'get_profile_manager',
    'reset_profile_manager',
]
