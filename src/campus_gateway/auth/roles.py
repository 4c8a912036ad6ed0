"""
Role Permissions

Maps the role label returned by the identity lookup (PGV, KHOA, SV, PKT)
onto a permission role, and each permission role onto the feature areas it
may use.

Rules
-----
- Restricted-class principals are always STUDENT, whatever their label.
- Unknown labels fall back to STUDENT, the least privileged role.
- Labels are matched case-insensitively after stripping.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, List


class PermissionRole(str, Enum):
    LECTURER = "LECTURER"
    DEPARTMENT = "DEPARTMENT"
    STUDENT = "STUDENT"
    FINANCE = "FINANCE"


class Feature(str, Enum):
    CLASSES = "classes"
    STUDENTS = "students"
    SUBJECTS = "subjects"
    CREDIT_CLASSES = "credit-classes"
    STUDENT_GRADES = "student-grades"
    REPORTS = "reports"
    COURSE_REGISTRATION = "course-registration"
    TUITION_PAYMENT = "tuition-payment"
    TUITION_REPORTS = "tuition-reports"
    DEPARTMENTS = "departments"
    SETTINGS = "settings"


_ACADEMIC: FrozenSet[Feature] = frozenset(
    {
        Feature.CLASSES,
        Feature.STUDENTS,
        Feature.SUBJECTS,
        Feature.CREDIT_CLASSES,
        Feature.STUDENT_GRADES,
        Feature.REPORTS,
        Feature.DEPARTMENTS,
        Feature.SETTINGS,
    }
)

ROLE_FEATURES: Dict[PermissionRole, FrozenSet[Feature]] = {
    PermissionRole.LECTURER: _ACADEMIC,
    PermissionRole.DEPARTMENT: _ACADEMIC,
    PermissionRole.STUDENT: frozenset({Feature.COURSE_REGISTRATION}),
    PermissionRole.FINANCE: frozenset({Feature.TUITION_PAYMENT, Feature.TUITION_REPORTS}),
}

ROLE_LABELS: Dict[str, PermissionRole] = {
    "PGV": PermissionRole.LECTURER,
    "LECTURER": PermissionRole.LECTURER,
    "KHOA": PermissionRole.DEPARTMENT,
    "DEPARTMENT": PermissionRole.DEPARTMENT,
    "SV": PermissionRole.STUDENT,
    "STUDENT": PermissionRole.STUDENT,
    "PKT": PermissionRole.FINANCE,
    "FINANCE": PermissionRole.FINANCE,
}


def permission_role_for(role_label: str) -> PermissionRole:
    """Permission role for a lookup role label."""
    return ROLE_LABELS.get(role_label.strip().upper(), PermissionRole.STUDENT)


def allowed_features(role: PermissionRole) -> List[Feature]:
    """Features open to `role`, in declaration order."""
    granted = ROLE_FEATURES[role]
    return [f for f in Feature if f in granted]


def has_feature(role: PermissionRole, feature: Feature) -> bool:
    return feature in ROLE_FEATURES[role]
