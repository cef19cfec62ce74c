"""
Pydantic models for the proposal engine.

Fields are snake_case; every model also accepts its camelCase alias so the
dashboard can post back the (camelCased) JSON it received from the API.
"""
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from typing import Optional, Any, Literal, Union


Level = Literal["low", "medium", "high"]
Severity = Literal["critical", "high", "medium"]


class EngineModel(BaseModel):
    model_config = {"alias_generator": to_camel, "populate_by_name": True}


# ---------------------------------------------------------------------------
# Technology catalog & costs
# ---------------------------------------------------------------------------

class TechnologyOption(EngineModel):
    model_config = {"frozen": True}

    name: str
    stage: Literal["primary", "secondary", "tertiary"] = "primary"
    description: str = ""
    pros: tuple[str, ...] = ()
    cons: tuple[str, ...] = ()
    efficiency: float = Field(ge=0, le=100)
    complexity: Level
    footprint: Literal["small", "medium", "large"]
    energy: Level


class CostBreakdown(EngineModel):
    equipment: int = Field(ge=0)
    construction: int = Field(ge=0)
    engineering: int = Field(ge=0)
    permits: int = Field(ge=0)
    contingency: int = Field(ge=0)
    total: int = Field(ge=0)


class OperationalCost(EngineModel):
    energy: int = Field(ge=0)
    chemicals: int = Field(ge=0)
    labor: int = Field(ge=0)
    maintenance: int = Field(ge=0)
    total: int = Field(ge=0)


class SelectionResult(EngineModel):
    selected_technologies: list[TechnologyOption]
    reasoning: list[str]


# ---------------------------------------------------------------------------
# Smart import
# ---------------------------------------------------------------------------

class DetectedField(EngineModel):
    original_name: str
    detected_type: Literal["number", "text", "date", "boolean"]
    confidence: float = Field(ge=0, le=100)
    value: Any = None
    unit: Optional[str] = None
    suggested_mapping: Optional[str] = None
    context: Optional[str] = None
    alternative_mappings: list[str] = Field(default_factory=list)


class MappingAmbiguity(EngineModel):
    field: str
    candidates: list[str]
    chosen: str
    confidence: float


class ImportAnalysis(EngineModel):
    file_name: str
    file_type: str
    total_fields: int
    detected_fields: list[DetectedField] = Field(default_factory=list)
    confidence: float = 0
    suggestions: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    ambiguities: list[MappingAmbiguity] = Field(default_factory=list)


class MappingRule(EngineModel):
    source_field: str
    target_section_id: str
    target_field_id: str
    confidence: float
    transformation: Optional[Literal["unit_conversion", "format_change", "calculation"]] = None
    notes: Optional[str] = None


class ImportConflict(EngineModel):
    field: str
    target_key: str
    existing_value: Any = None
    new_value: Any = None
    recommendation: Literal["keep_existing", "use_new", "merge"]


class ImportPreview(EngineModel):
    analysis: ImportAnalysis
    mapping_rules: list[MappingRule] = Field(default_factory=list)
    preview_data: dict[str, Any] = Field(default_factory=dict)
    conflicts: list[ImportConflict] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class ValidationContext(EngineModel):
    sector: str
    treatment_type: Optional[str] = None
    population: Optional[float] = None
    existing_data: dict[str, Any] = Field(default_factory=dict)


class ValidationResult(EngineModel):
    is_valid: bool
    level: Literal["error", "warning", "info"]
    message: str
    suggestion: Optional[str] = None
    field: Optional[str] = None


# ---------------------------------------------------------------------------
# Proposal (read-only snapshot owned by the backend) & smart flags
# ---------------------------------------------------------------------------

class ProvenCase(EngineModel):
    case_id: Optional[str] = None
    application_type: Optional[str] = None
    treatment_train: Optional[str] = None
    flow_rate: Optional[float] = None
    flow_range: Optional[str] = None
    capex_usd: Optional[float] = None
    similarity_score: Optional[float] = None


class AIMetadata(EngineModel):
    confidence_level: Optional[Literal["High", "Medium", "Low"]] = None
    assumptions: list[str] = Field(default_factory=list)
    proven_cases: list[ProvenCase] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    user_sector: Optional[str] = None
    generated_at: Optional[str] = None


class TreatmentParameter(EngineModel):
    parameter_name: str
    influent_concentration: Optional[float] = None
    effluent_concentration: Optional[float] = None
    removal_efficiency_percent: Optional[float] = None
    unit: Optional[str] = None
    treatment_stage: Optional[str] = None


class TreatmentEfficiency(EngineModel):
    parameters: list[TreatmentParameter] = Field(default_factory=list)
    overall_compliance: Optional[bool] = None
    critical_parameters: list[str] = Field(default_factory=list)


class EquipmentSpec(EngineModel):
    type: str
    stage: Optional[str] = None
    specifications: Optional[str] = None
    capacity_m3_day: Optional[float] = None
    power_consumption_kw: Optional[float] = None
    capex_usd: Optional[float] = None
    criticality: Optional[Level] = None


class Proposal(EngineModel):
    id: Optional[str] = None
    version: Optional[str] = None
    title: Optional[str] = None
    capex: Optional[float] = None
    opex: Optional[float] = None
    equipment_list: list[EquipmentSpec] = Field(default_factory=list)
    treatment_efficiency: Optional[TreatmentEfficiency] = None
    ai_metadata: Optional[AIMetadata] = None


class FlagAction(EngineModel):
    id: str
    label: str
    completed: bool = False


class SmartFlag(EngineModel):
    id: str
    severity: Severity
    title: str
    message: str
    impact: list[str] = Field(default_factory=list)
    actions: list[FlagAction] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Generated proposal
# ---------------------------------------------------------------------------

class Timeline(EngineModel):
    design: float
    construction: float
    commissioning: float
    total: float


class Risk(EngineModel):
    category: Literal["technical", "financial", "regulatory", "operational"]
    risk: str
    probability: Level
    impact: Level
    mitigation: str


class PerformanceTarget(EngineModel):
    parameter: str
    influent: float
    effluent: float
    removal: float
    unit: str


class Diagrams(EngineModel):
    flow_diagram: str
    layout: str


class IntelligentProposal(EngineModel):
    id: str
    version: str
    sector: str
    reasoning: list[str]
    selected_technologies: list[TechnologyOption]
    capex: CostBreakdown
    opex: OperationalCost
    timeline: Timeline
    assumptions: list[str]
    risks: list[Risk]
    performance_targets: list[PerformanceTarget]
    diagrams: Diagrams
    validation: list[ValidationResult] = Field(default_factory=list)


class GenerationStep(EngineModel):
    id: str
    title: str
    description: str
    duration: int
    status: Literal["pending", "running", "completed", "error"] = "pending"


# ---------------------------------------------------------------------------
# API request bodies
# ---------------------------------------------------------------------------

class CostRequest(EngineModel):
    flow: float
    sector: str
    technologies: list[str] = Field(default_factory=list)


class SelectionRequest(EngineModel):
    sector: str
    design_flow: float
    organic_load: float
    population: Optional[float] = None
    target_efficiency: Optional[float] = None


class ProposalRequest(EngineModel):
    sector: str
    technical_data: dict[str, Any] = Field(default_factory=dict)


class AnalyzeRequest(EngineModel):
    file_name: str
    content: Union[str, dict[str, Any], list[Any]]


class PreviewRequest(EngineModel):
    analysis: ImportAnalysis
    existing_data: dict[str, Any] = Field(default_factory=dict)


class FieldValidationRequest(EngineModel):
    field_id: str
    value: Any = None
    context: ValidationContext


class DatasetValidationRequest(EngineModel):
    data: dict[str, Any]
    context: ValidationContext
