# camfleet — Database Models
# Import all models here for SQLAlchemy discovery

from camfleet.models.device import Device                    # noqa
from camfleet.models.queued_command import QueuedCommand     # noqa
from camfleet.models.upload_artifact import UploadArtifact   # noqa
