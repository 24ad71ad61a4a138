from ._client import *  # noqa: F403
from ._mock import *  # noqa: F403
from ._registration import *  # noqa: F403
from ._storages import *  # noqa: F403
from ._strategies import *  # noqa: F403
from ._transports import *  # noqa: F403
from ._worker import *  # noqa: F403
