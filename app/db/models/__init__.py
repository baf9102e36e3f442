# Models package (re-export feature modules for stable imports)
from .auth.otp import OTPVerification
from .users.user import IdentityUser
from .users.profile import Profile, Driver, Customer, ROLES, ROLE_CUSTOMER, ROLE_DRIVER
from .users.session import UserSession

__all__ = [
    "OTPVerification",
    "IdentityUser",
    "Profile",
    "Driver",
    "Customer",
    "UserSession",
    "ROLES",
    "ROLE_CUSTOMER",
    "ROLE_DRIVER",
]
