"""Custom SQLAlchemy types and column helpers shared by the models"""
from sqlalchemy import TypeDecorator, String, Numeric
import uuid


def generate_uuid():
    """Generate a UUID string"""
    return str(uuid.uuid4())


class GUID(TypeDecorator):
    """Platform-independent GUID type that stores UUIDs as VARCHAR(36)"""
    impl = String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        return dialect.type_descriptor(String(36))

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return value

    def process_result_value(self, value, dialect):
        if value is not None:
            return str(value)
        return value


# Currency amounts (quotes, costs) - two decimal places, returned as Decimal
Money = Numeric(10, 2, asdecimal=True)
