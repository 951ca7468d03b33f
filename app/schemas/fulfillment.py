from __future__ import annotations

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator

RemarkStage = Literal[
    "order_received",
    "sample_free_issue",
    "print",
    "ready_to_dispatch",
    "dispatched",
    "delivery_complete",
    "invoice_complete",
]
RemarkType = Literal["internal", "external"]
RevertTarget = Literal[
    "order_received",
    "sample_free_issue",
    "print",
    "ready_to_dispatch",
    "dispatched",
    "delivery_complete",
]


class RemarkInput(BaseModel):
    type: RemarkType = "internal"
    content: str = Field(min_length=1, max_length=2000)
    show_on_invoice: bool = False

    @field_validator("content")
    @classmethod
    def _strip_content(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("content must not be blank")
        return stripped


class RemarkCreate(RemarkInput):
    stage: RemarkStage


class RemarkUpdate(BaseModel):
    type: Optional[RemarkType] = None
    content: Optional[str] = Field(default=None, min_length=1, max_length=2000)
    show_on_invoice: Optional[bool] = None

    @field_validator("content")
    @classmethod
    def _strip_content(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        stripped = value.strip()
        if not stripped:
            raise ValueError("content must not be blank")
        return stripped


class SampleSelection(BaseModel):
    sample_free_issue_item_id: int
    quantity: int = Field(default=1, ge=1, le=99)


class _ActionBase(BaseModel):
    remark: Optional[RemarkInput] = None


class AddSamplesAction(_ActionBase):
    action: Literal["add_samples"]
    samples: list[SampleSelection] = Field(min_length=1, max_length=20)


class AdvanceToPrintAction(_ActionBase):
    action: Literal["advance_to_print"]


class RecordPrintAction(_ActionBase):
    action: Literal["record_print"]


class PutOnHoldAction(_ActionBase):
    action: Literal["put_on_hold"]
    hold_reason_id: int


class RevertHoldAction(_ActionBase):
    action: Literal["revert_hold"]


class MarkReadyAction(_ActionBase):
    action: Literal["mark_ready"]


class DispatchAction(_ActionBase):
    action: Literal["dispatch"]
    rider_id: Optional[int] = None
    courier_service_id: Optional[int] = None


class MarkDeliveredAction(_ActionBase):
    action: Literal["mark_delivered"]


class MarkInvoiceCompleteAction(_ActionBase):
    action: Literal["mark_invoice_complete"]


class CompletePosAction(_ActionBase):
    action: Literal["complete_pos"]


class RevertToStageAction(_ActionBase):
    action: Literal["revert_to_stage"]
    target_stage: RevertTarget


FulfillmentAction = Annotated[
    Union[
        AddSamplesAction,
        AdvanceToPrintAction,
        RecordPrintAction,
        PutOnHoldAction,
        RevertHoldAction,
        MarkReadyAction,
        DispatchAction,
        MarkDeliveredAction,
        MarkInvoiceCompleteAction,
        CompletePosAction,
        RevertToStageAction,
    ],
    Field(discriminator="action"),
]

fulfillment_action_adapter: TypeAdapter[FulfillmentAction] = TypeAdapter(FulfillmentAction)


class RiderConfirmation(BaseModel):
    confirmed: bool
