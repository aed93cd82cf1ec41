from bson import ObjectId

from utils.errors import AuthorizationError, ValidationError

# -------------------------------
# ObjectId Guard
# -------------------------------

def parse_object_id(value, name: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except Exception:
        raise ValidationError(f"Invalid {name}")


def as_owner_key(value):
    """Stored owner/seller references are ObjectIds when they look like one."""
    if isinstance(value, ObjectId):
        return value
    value = str(value)
    return ObjectId(value) if ObjectId.is_valid(value) else value


# -------------------------------
# Vendor State Guard
# -------------------------------

def assert_approved_vendor(user: dict):
    if user.get("role") != "company":
        raise AuthorizationError("Vendor access only")

    if user.get("vendor_status") != "approved":
        raise AuthorizationError("Vendor account is not approved")
