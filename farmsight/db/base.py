# Import every model so Base.metadata knows all tables before create_all
from farmsight.db.database import Base  # noqa: F401
from farmsight.models.user import User  # noqa: F401
from farmsight.models.farm import Farm  # noqa: F401
from farmsight.models.ndvi_data import NDVIData  # noqa: F401
from farmsight.models.alert import Alert, AlertCooldown  # noqa: F401
from farmsight.models.video_progress import VideoProgress  # noqa: F401
