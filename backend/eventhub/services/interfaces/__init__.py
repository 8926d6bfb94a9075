"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .admission import AdmissionGuard
from .hit_counter import HitCounter
from .local_admission import LocalAdmission
from .optimistic_admission import OptimisticAdmission

__all__ = ['AdmissionGuard', 'HitCounter', 'LocalAdmission', 'OptimisticAdmission']
