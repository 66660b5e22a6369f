"""FHIR resource type names and the conformance load order."""

from __future__ import annotations

FHIR_NS = "http://hl7.org/fhir"
XHTML_NS = "http://www.w3.org/1999/xhtml"

# STU3 resource names; anything else in the FHIR namespace is "unknown".
RESOURCE_TYPES: frozenset[str] = frozenset({
    "Account", "ActivityDefinition", "AdverseEvent", "AllergyIntolerance",
    "Appointment", "AppointmentResponse", "AuditEvent", "Basic", "Binary",
    "BodySite", "Bundle", "CapabilityStatement", "CarePlan", "CareTeam",
    "ChargeItem", "Claim", "ClaimResponse", "ClinicalImpression", "CodeSystem",
    "Communication", "CommunicationRequest", "CompartmentDefinition",
    "Composition", "ConceptMap", "Condition", "Consent", "Contract", "Coverage",
    "DataElement", "DetectedIssue", "Device", "DeviceComponent", "DeviceMetric",
    "DeviceRequest", "DeviceUseStatement", "DiagnosticReport", "DocumentManifest",
    "DocumentReference", "EligibilityRequest", "EligibilityResponse",
    "Encounter", "Endpoint", "EnrollmentRequest", "EnrollmentResponse",
    "EpisodeOfCare", "ExpansionProfile", "ExplanationOfBenefit",
    "FamilyMemberHistory", "Flag", "Goal", "GraphDefinition", "Group",
    "GuidanceResponse", "HealthcareService", "ImagingManifest", "ImagingStudy",
    "Immunization", "ImmunizationRecommendation", "ImplementationGuide",
    "Library", "Linkage", "List", "Location", "Measure", "MeasureReport",
    "Media", "Medication", "MedicationAdministration", "MedicationDispense",
    "MedicationRequest", "MedicationStatement", "MessageDefinition",
    "MessageHeader", "NamingSystem", "NutritionOrder", "Observation",
    "OperationDefinition", "OperationOutcome", "Organization", "Parameters",
    "Patient", "PaymentNotice", "PaymentReconciliation", "Person",
    "PlanDefinition", "Practitioner", "PractitionerRole", "Procedure",
    "ProcedureRequest", "ProcessRequest", "ProcessResponse", "Provenance",
    "Questionnaire", "QuestionnaireResponse", "ReferralRequest", "RelatedPerson",
    "RequestGroup", "ResearchStudy", "ResearchSubject", "RiskAssessment",
    "Schedule", "SearchParameter", "Sequence", "ServiceDefinition", "Slot",
    "Specimen", "StructureDefinition", "StructureMap", "Subscription",
    "Substance", "SupplyDelivery", "SupplyRequest", "Task", "TestReport",
    "TestScript", "ValueSet", "VisionPrescription",
})

# Conformance-bearing categories, in the order their references require.
LOAD_ORDER: tuple[str, ...] = (
    "NamingSystem",
    "CodeSystem",
    "ValueSet",
    "DataElement",
    "StructureDefinition",
    "ConceptMap",
    "StructureMap",
)

CONFORMANCE_TYPES: frozenset[str] = frozenset(LOAD_ORDER)

UNSUPPORTED_TYPES: frozenset[str] = frozenset({"Bundle"})


def is_resource_type(name: str | None) -> bool:
    return name in RESOURCE_TYPES
