from civic_portal.core.errors import ValidationError
from civic_portal.core.repository import AccountRepository
from civic_portal.core.schemas import Profile, ProfileFields

MAX_PROFILE_FIELD_LENGTH = 200


def clean_profile_fields(fields: ProfileFields) -> ProfileFields:
    cleaned = {}
    for name, value in fields.model_dump().items():
        if value is None:
            cleaned[name] = None
            continue
        normalized = value.strip()
        if len(normalized) > MAX_PROFILE_FIELD_LENGTH:
            raise ValidationError(
                f"{name.replace('_', ' ').capitalize()} must be {MAX_PROFILE_FIELD_LENGTH} characters or fewer."
            )
        cleaned[name] = normalized or None
    return ProfileFields(**cleaned)


async def save_profile(repository: AccountRepository, fields: ProfileFields) -> Profile:
    """Create the caller's profile, or update it when one already exists."""
    cleaned = clean_profile_fields(fields)
    existing = await repository.get_profile()
    if existing is None:
        return await repository.create_profile(cleaned)
    return await repository.update_profile(cleaned)
