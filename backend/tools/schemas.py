"""
Tool argument schemas.

Every tool call the model makes is validated into one variant of a tagged
union keyed by tool name before anything executes. The executors only ever
see typed argument records.
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from errors.codes import ErrorCode
from errors.exceptions import NotFoundError, ValidationError


class _Args(BaseModel):
    # Models occasionally add stray keys; they are dropped, not rejected
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class BrowsePublishersArgs(_Args):
    niche: Optional[str] = None
    language: Optional[str] = None
    country: Optional[str] = None
    searchQuery: Optional[str] = None

    daMin: Optional[float] = None
    daMax: Optional[float] = None
    paMin: Optional[float] = None
    paMax: Optional[float] = None
    drMin: Optional[float] = None
    drMax: Optional[float] = None

    spamMin: Optional[float] = None
    spamMax: Optional[float] = None

    semrushOverallTrafficMin: Optional[float] = None
    semrushOrganicTrafficMin: Optional[float] = None

    priceMin: Optional[float] = None
    priceMax: Optional[float] = None

    backlinkNature: Optional[Literal["do-follow", "no-follow"]] = None
    availability: Optional[bool] = None
    remarkIncludes: Optional[str] = None

    page: Optional[int] = Field(default=None, ge=1)
    limit: Optional[int] = Field(default=None, ge=1, le=100)

    def active_filters(self) -> Dict[str, Any]:
        """Filters the caller actually set, for echoing back to the UI."""
        return self.model_dump(exclude_none=True)


class GetPublisherDetailsArgs(_Args):
    publisherId: str = Field(min_length=1)


class CartItemArgs(_Args):
    id: Optional[str] = None
    type: Optional[str] = None
    name: str = ""
    price: float = 0.0
    quantity: int = 1
    metadata: Optional[Dict[str, Any]] = None


class ViewCartArgs(_Args):
    cartItems: List[CartItemArgs] = Field(default_factory=list)


class AddToCartArgs(_Args):
    type: Literal["publisher", "product"] = "publisher"
    name: str = Field(min_length=1)
    price: float = Field(ge=0)
    quantity: int = Field(default=1, ge=1)
    metadata: Optional[Dict[str, Any]] = None


class RemoveFromCartArgs(_Args):
    itemId: str = Field(min_length=1)


class ClearCartArgs(_Args):
    pass


class ProcessPaymentArgs(_Args):
    cartItems: List[CartItemArgs]


class BrowsePublishersCall(BaseModel):
    name: Literal["browsePublishers"]
    args: BrowsePublishersArgs


class GetPublisherDetailsCall(BaseModel):
    name: Literal["getPublisherDetails"]
    args: GetPublisherDetailsArgs


class ViewCartCall(BaseModel):
    name: Literal["viewCart"]
    args: ViewCartArgs


class AddToCartCall(BaseModel):
    name: Literal["addToCart"]
    args: AddToCartArgs


class RemoveFromCartCall(BaseModel):
    name: Literal["removeFromCart"]
    args: RemoveFromCartArgs


class ClearCartCall(BaseModel):
    name: Literal["clearCart"]
    args: ClearCartArgs


class ProcessPaymentCall(BaseModel):
    name: Literal["processPayment"]
    args: ProcessPaymentArgs


ToolCall = Annotated[
    Union[
        BrowsePublishersCall,
        GetPublisherDetailsCall,
        ViewCartCall,
        AddToCartCall,
        RemoveFromCartCall,
        ClearCartCall,
        ProcessPaymentCall,
    ],
    Field(discriminator="name"),
]

_tool_call_adapter = TypeAdapter(ToolCall)

TOOL_NAMES = (
    "browsePublishers",
    "getPublisherDetails",
    "viewCart",
    "addToCart",
    "removeFromCart",
    "clearCart",
    "processPayment",
)


def _validation_code(error_type: str) -> ErrorCode:
    """Map a pydantic error type onto the relay's validation codes."""
    if error_type == "missing":
        return ErrorCode.VALIDATION_MISSING_PARAM
    if error_type.startswith(("greater_than", "less_than")) or "too_short" in error_type or "too_long" in error_type:
        return ErrorCode.VALIDATION_OUT_OF_RANGE
    return ErrorCode.VALIDATION_INVALID_TYPE


def parse_tool_call(name: str, args: Optional[Dict[str, Any]]):
    """Validate a raw (name, args) pair into its typed ToolCall variant.

    Raises:
        NotFoundError: name is not a known tool
        ValidationError: args do not match the tool's schema
    """
    if name not in TOOL_NAMES:
        raise NotFoundError(
            f"Unknown function: {name}",
            details="This function is not available in the system.",
            resource_type="tool",
            resource_id=name,
        )

    try:
        return _tool_call_adapter.validate_python({"name": name, "args": args or {}})
    except PydanticValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        location = ".".join(str(p) for p in first.get("loc", ()) if p not in ("args", name))
        raise ValidationError(
            f"Invalid arguments for {name}",
            details=first.get("msg", str(e)),
            code=_validation_code(first.get("type", "")),
            parameter=location or None,
            tool=name,
        ) from e
