"""Signup request payloads."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from bazaar.accounts.models import EntityType


class _CamelModel(BaseModel):
    """Accepts camelCase JSON keys as well as snake_case attribute names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Location(_CamelModel):
    """Postal location of a plain user."""
    country: str = ""
    governorate: str = ""
    district: str = ""
    city: str = ""


class Address(Location):
    """Business address."""
    street: str | None = None
    postal_code: str | None = None
    lat: float | None = None
    lng: float | None = None


class BusinessSignupData(_CamelModel):
    """Company or wholesaler details."""
    business_name: str = ""
    category: str = ""
    sub_category: str | None = None
    phones: list[str] = Field(default_factory=list)
    emails: list[str] = Field(default_factory=list)
    address: Address | None = None
    referral_code: str | None = Field(default=None, max_length=32)


class ServiceProviderInfo(_CamelModel):
    """Service provider details."""
    business_name: str | None = None
    service_type: str = ""
    years_experience: int | None = Field(default=None, ge=0, le=80)
    description: str | None = Field(default=None, max_length=1000)


class SignupProfile(_CamelModel):
    """Signup fields for every entity variant, minus the password.

    This is the form persisted on a pending signup while OTP is awaited.
    """
    email: str
    full_name: str = Field(..., max_length=255)
    user_type: EntityType = EntityType.USER
    phone: str | None = None
    referral_code: str | None = Field(default=None, max_length=32)

    # Plain users
    date_of_birth: str | None = None
    gender: str | None = None
    interested_deals: list[str] = Field(default_factory=list)
    location: Location | None = None

    # Business variants
    company_data: BusinessSignupData | None = None
    wholesaler_data: BusinessSignupData | None = None
    service_provider_info: ServiceProviderInfo | None = None

    @property
    def business_data(self) -> BusinessSignupData | None:
        """Company or wholesaler block matching the user type."""
        if self.user_type == EntityType.COMPANY:
            return self.company_data
        if self.user_type == EntityType.WHOLESALER:
            return self.wholesaler_data
        return None

    @property
    def effective_referral_code(self) -> str | None:
        """Referral code from the top level, else from the business block."""
        if self.referral_code and self.referral_code.strip():
            return self.referral_code
        business = self.business_data
        if business and business.referral_code and business.referral_code.strip():
            return business.referral_code
        return None

    @property
    def identifier(self) -> str:
        """Login identifier placed in issued tokens."""
        return self.email


class SignupRequest(SignupProfile):
    """Signup payload as received from a client."""
    password: str = Field(..., min_length=8, max_length=100)

    def profile(self) -> SignupProfile:
        """Copy of the payload without the password."""
        return SignupProfile.model_validate(self.model_dump(exclude={"password"}))
