from app.models.user import User  # noqa: F401
from app.models.relationship import Relationship  # noqa: F401
from app.models.message import Message  # noqa: F401
from app.models.post import Post, PostComment, PostLike  # noqa: F401
