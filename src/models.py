"""
Every mapped table, imported once so `Base.metadata` is complete.
Alembic's env.py and the test fixtures import this module.
"""
from src.dispatch.infrastructure.models import (  # noqa: F401
    BloodRequestModel,
    RequestDispatchModel,
    RequestIdempotencyModel,
)
from src.geo.infrastructure.models import BloodBankModel, NgoModel, UserModel  # noqa: F401
from src.inventory.infrastructure.models import BloodStockModel, DonationModel  # noqa: F401
from src.scheduling.infrastructure.models import (  # noqa: F401
    AppointmentModel,
    AppointmentSlotModel,
    DefaultAppointmentSlotModel,
)
from src.shared.infrastructure.database.base_model import Base

metadata = Base.metadata
