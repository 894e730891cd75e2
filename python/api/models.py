"""
Pydantic request/response schemas for the Trade Diligence API

Request models use the camelCase field names of the case JSON; they are
turned into risk_models.Case with Case.from_dict().
"""

from typing import List, Optional, Dict, Any

from pydantic import BaseModel, Field, field_validator


class PartyModel(BaseModel):
    """One transaction party."""
    company: Optional[str] = Field(default=None, max_length=300, description="Company name")
    name: Optional[str] = Field(default=None, max_length=200, description="Person name")
    role: Optional[str] = Field(default=None, description="Role (Buyer, Seller, Shipper, ...)")
    country: Optional[str] = Field(default=None, description="Country name or ISO code")
    email: Optional[str] = Field(default=None, max_length=254, description="Contact email")


class DiligenceRequest(BaseModel):
    """Request schema for a diligence run.

    At least one of companyName, email or allParties is required.
    """
    case_id: Optional[str] = Field(default=None, alias="caseId", max_length=64)
    all_parties: List[PartyModel] = Field(default_factory=list, alias="allParties")
    company_name: Optional[str] = Field(default=None, alias="companyName", max_length=300)
    email: Optional[str] = Field(default=None, max_length=254)
    country: Optional[str] = Field(default=None)
    representative: Optional[str] = Field(default=None, max_length=200)
    iban: Optional[str] = Field(default=None, max_length=50)
    swift: Optional[str] = Field(default=None, max_length=20)
    vessel_identifier: Optional[str] = Field(default=None, alias="vesselIdentifier", max_length=100)
    document_text: Optional[str] = Field(
        default=None,
        alias="documentText",
        max_length=200_000,
        description="Free text of trade documents (bill of lading, LC, ...)"
    )
    jurisdictions: List[str] = Field(default_factory=list)
    port_of_loading: Optional[str] = Field(default=None, alias="portOfLoading")
    port_of_discharge: Optional[str] = Field(default=None, alias="portOfDischarge")
    captain: Optional[str] = Field(default=None, max_length=200)

    model_config = {"populate_by_name": True}

    def to_case_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class FindingResponse(BaseModel):
    """Accepted provider hit."""
    entity: str
    entity_type: str
    provider: str
    matched_name: str
    match_score: float = Field(..., ge=0.0, le=1.0)
    severity: str
    tags: List[str] = Field(default_factory=list)
    candidate: Dict[str, Any] = Field(default_factory=dict)


class ListMatches(BaseModel):
    found: bool
    matches: List[FindingResponse] = Field(default_factory=list)
    lists: List[str] = Field(default_factory=list)


class DiligenceResponse(BaseModel):
    """Response schema for a diligence run (Verdict.to_dict())."""
    case_id: str = Field(..., alias="caseId")
    risk_level: str = Field(..., alias="riskLevel", description="GREEN, YELLOW, RED or BLACK")
    risk_score: int = Field(..., alias="riskScore", ge=0, le=100)
    red_flags: List[str] = Field(default_factory=list, alias="redFlags")
    positive_signals: List[str] = Field(default_factory=list, alias="positiveSignals")
    databases_checked: List[str] = Field(default_factory=list, alias="databasesChecked")
    databases_unavailable: List[str] = Field(default_factory=list, alias="databasesUnavailable")
    sanctions: ListMatches
    pep: ListMatches
    findings: List[FindingResponse] = Field(default_factory=list)
    entities: List[Dict[str, Any]] = Field(default_factory=list)
    jurisdiction: List[Dict[str, Any]] = Field(default_factory=list)
    financial: Dict[str, Any] = Field(default_factory=dict)
    documents: Dict[str, Any] = Field(default_factory=dict)
    contacts: Dict[str, Any] = Field(default_factory=dict)
    issued_at: str = Field(..., alias="issuedAt")
    processing_time_ms: int = Field(default=0, alias="processingTimeMs", ge=0)

    model_config = {"populate_by_name": True}


class IbanRequest(BaseModel):
    iban: str = Field(..., min_length=1, max_length=50, description="IBAN, spaces allowed")


class IbanResponse(BaseModel):
    """IbanResult.to_dict()"""
    iban: str
    valid: bool
    country: Optional[str] = None
    bank_code: Optional[str] = Field(default=None, alias="bankCode")
    formatted: Optional[str] = None
    error: Optional[str] = None
    expected_length: Optional[int] = Field(default=None, alias="expectedLength")

    model_config = {"populate_by_name": True}


class SwiftRequest(BaseModel):
    swift: str = Field(..., min_length=1, max_length=20, description="SWIFT/BIC code")

    @field_validator('swift')
    @classmethod
    def strip_swift(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("SWIFT code must not be blank")
        return v


class SwiftResponse(BaseModel):
    """SwiftResult.to_dict()"""
    swift: str
    valid: bool
    bank_code: Optional[str] = Field(default=None, alias="bankCode")
    country_code: Optional[str] = Field(default=None, alias="countryCode")
    location_code: Optional[str] = Field(default=None, alias="locationCode")
    branch_code: Optional[str] = Field(default=None, alias="branchCode")
    sanctioned: bool = False
    sanction_info: Optional[Dict[str, Any]] = Field(default=None, alias="sanctionInfo")
    high_risk_country: bool = Field(default=False, alias="highRiskCountry")
    risk_level: Optional[str] = Field(default=None, alias="riskLevel")
    error: Optional[str] = None

    model_config = {"populate_by_name": True}


class ProviderHealth(BaseModel):
    name: str
    label: str
    calls: int = 0
    failures: int = 0
    avg_time_ms: float = 0.0


class HealthResponse(BaseModel):
    """Response schema for health check endpoint."""
    status: str = Field(default="healthy", description="Service status")
    providers: List[ProviderHealth] = Field(
        default_factory=list,
        description="Enabled screening providers with call statistics"
    )
    domain_age_lookup: bool = Field(default=False, description="RDAP domain age lookup enabled")
    version: str = Field(..., description="Engine version")
    uptime_seconds: Optional[int] = Field(
        default=None,
        description="Server uptime in seconds"
    )
    error_message: Optional[str] = None


class ErrorDetail(BaseModel):
    """Detailed error information."""
    code: str = Field(..., description="Error code for programmatic handling")
    message: str = Field(..., description="Human-readable error message")
    field: Optional[str] = Field(default=None, description="Field that caused error")
    suggestion: Optional[str] = Field(default=None, description="How to fix the error")
    timestamp: str = Field(..., description="Error timestamp (ISO 8601)")


class ErrorResponse(BaseModel):
    """Standardized error response format."""
    error: ErrorDetail
