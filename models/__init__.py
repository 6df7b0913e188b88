# Importing every model registers it with Base.metadata and resolves relationships
from models import user, account, session, verification  # noqa: F401
