from .user import User  # noqa: F401
from .guest_token import GuestToken  # noqa: F401
from .password_reset_code import PasswordResetCode  # noqa: F401
from .api_key import ApiKey  # noqa: F401
from .site import Site, SitePermission  # noqa: F401
from .user_setting import UserSetting  # noqa: F401
from .user_name import UserName  # noqa: F401
