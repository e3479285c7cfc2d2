"""View-state models, one per data-driven screen.

Each model issues one fetch sequence when its screen appears or is
refreshed, exposes the loaded records and display strings, and cancels its
in-flight load when the screen is dismissed.
"""

from dosely.screens.base import ScreenModel
from dosely.screens.dashboard import DashboardModel
from dosely.screens.doses import DoseLogModel
from dosely.screens.medications import MedicationListModel
from dosely.screens.weight_log import WeightLogModel

__all__ = [
    "ScreenModel",
    "DashboardModel",
    "DoseLogModel",
    "MedicationListModel",
    "WeightLogModel",
]
