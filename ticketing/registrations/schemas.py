"""
Schémas d'entrée stricts des inscriptions (pydantic v2).

Union discriminée sur registrationType (individual | lodge | delegation);
les champs inconnus sont rejetés. Les prix envoyés par le client sont acceptés
pour compatibilité mais ne sont jamais utilisés comme prix facturé.
"""
from decimal import Decimal
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, TypeAdapter, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ticketing.pricing.models import CartSelection


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class TicketSelectionIn(ApiModel):
    attendee_id: str = Field(min_length=1)
    catalog_item_id: Optional[str] = None
    # identifiant hérité "<attendeeId>-<catalogItemId>"
    id: Optional[str] = None
    is_package: bool = False
    price: Decimal = Field(default=Decimal("0"), ge=0)

    @model_validator(mode="after")
    def _require_reference(self):
        if not (self.catalog_item_id or self.id):
            raise ValueError("catalogItemId requis")
        return self

    def to_selection(self) -> CartSelection:
        if self.catalog_item_id:
            return CartSelection(
                attendee_id=self.attendee_id,
                catalog_item_id=self.catalog_item_id,
                is_package=self.is_package,
                price=self.price,
                selection_id=self.id or "",
            )
        return CartSelection.from_legacy(self.id or "", self.attendee_id, is_package=self.is_package, price=self.price)


class AttendeeIn(ApiModel):
    attendee_id: str = Field(min_length=1)
    attendee_type: Literal["mason", "guest"] = "mason"
    title: Optional[str] = None
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    is_primary: bool = False
    partner_of: Optional[str] = None
    lodge_name: Optional[str] = None
    grand_lodge: Optional[str] = None
    rank: Optional[str] = None
    dietary_requirements: Optional[str] = None
    special_needs: Optional[str] = None

    @field_validator("first_name", "last_name")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("champ vide")
        return v


class BillingContactIn(ApiModel):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: EmailStr
    phone: Optional[str] = None
    business_name: Optional[str] = None


class LodgeDetailsIn(ApiModel):
    lodge_id: Optional[str] = None
    lodge_name: str = Field(min_length=1)
    lodge_number: Optional[str] = None
    grand_lodge: Optional[str] = None


class _AttendeeRegistration(ApiModel):
    attendees: List[AttendeeIn] = Field(min_length=1)
    tickets: List[TicketSelectionIn] = Field(min_length=1)
    billing_details: BillingContactIn
    payment_method_id: str = Field(min_length=1)

    @model_validator(mode="after")
    def _check_attendees(self):
        ids = [a.attendee_id for a in self.attendees]
        if len(set(ids)) != len(ids):
            raise ValueError("attendeeId en double")
        if sum(1 for a in self.attendees if a.is_primary) != 1:
            raise ValueError("un et un seul participant principal requis")
        known = set(ids)
        for a in self.attendees:
            if a.partner_of and a.partner_of not in known:
                raise ValueError(f"partnerOf inconnu: {a.partner_of}")
        for t in self.tickets:
            if t.attendee_id not in known:
                raise ValueError(f"billet pour un participant inconnu: {t.attendee_id}")
        return self

    def selections(self) -> List[CartSelection]:
        return [t.to_selection() for t in self.tickets]

    def attendee_keys(self) -> List[str]:
        return [a.attendee_id for a in self.attendees]


class IndividualRegistrationIn(_AttendeeRegistration):
    registration_type: Literal["individual"]


class DelegationRegistrationIn(_AttendeeRegistration):
    registration_type: Literal["delegation"]
    delegation_name: Optional[str] = None
    grand_lodge: Optional[str] = None


class LodgeRegistrationIn(ApiModel):
    registration_type: Literal["lodge"]
    package_id: str = Field(min_length=1)
    quantity: int = Field(ge=1, le=100)
    lodge_details: LodgeDetailsIn
    billing_details: BillingContactIn
    payment_method_id: str = Field(min_length=1)

    def selections(self) -> List[CartSelection]:
        return [
            CartSelection(
                attendee_id=key,
                catalog_item_id=self.package_id,
                is_package=True,
                selection_id=f"{key}-{self.package_id}",
            )
            for key in self.attendee_keys()
        ]

    def attendee_keys(self) -> List[str]:
        # Billets de loge non nominatifs: un emplacement par forfait
        return [f"package-{n}" for n in range(1, self.quantity + 1)]


RegistrationIn = Annotated[
    Union[IndividualRegistrationIn, LodgeRegistrationIn, DelegationRegistrationIn],
    Field(discriminator="registration_type"),
]

REGISTRATION_ADAPTER: TypeAdapter = TypeAdapter(RegistrationIn)


def parse_registration(body) -> Union[IndividualRegistrationIn, LodgeRegistrationIn, DelegationRegistrationIn]:
    """Valide un body JSON; lève pydantic.ValidationError."""
    return REGISTRATION_ADAPTER.validate_python(body)
