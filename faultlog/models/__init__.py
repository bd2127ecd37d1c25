from ..database import Base
from .storage import KeyValueEntry
