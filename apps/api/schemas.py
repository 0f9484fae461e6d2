"""Response models shared by several routers."""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict

from models import User


def age_on(dob: date, today: date | None = None) -> int:
    today = today or date.today()
    return today.year - dob.year - ((today.month, today.day) < (dob.month, dob.day))


class PhotoOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    url: str
    is_primary: bool
    order: int


class InterestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    category: str


class UserPublic(BaseModel):
    """Profile as other users see it."""

    id: int
    first_name: str
    age: int
    gender: str
    bio: str | None = None
    location: str | None = None
    is_online: bool = False
    last_seen: datetime | None = None
    photo_url: str | None = None

    @classmethod
    def from_user(cls, user: User, photo_url: str | None = None) -> "UserPublic":
        return cls(
            id=user.id,
            first_name=user.first_name,
            age=age_on(user.date_of_birth),
            gender=user.gender,
            bio=user.bio,
            location=user.location,
            is_online=user.is_online,
            last_seen=user.last_seen,
            photo_url=photo_url,
        )


class UserOut(BaseModel):
    """The caller's own account."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    phone: str | None = None
    first_name: str
    last_name: str
    date_of_birth: date
    gender: str
    bio: str | None = None
    location: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    is_verified: bool
    is_active: bool
    created_at: datetime
