import enum

class DraftKind(str, enum.Enum):
    stock_update = "stock_update"
    credit_note = "credit_note"

class DocumentType(str, enum.Enum):
    invoice = "invoice"
    stock_report = "stock_report"
    deposit_slip = "deposit_slip"
    credit_note = "credit_note"

class DraftState(str, enum.Enum):
    clean = "CLEAN"
    dirty = "DIRTY"
    pending_decision = "PENDING_DECISION"
    busy = "BUSY"
    discarded = "DISCARDED"
    committed = "COMMITTED"
