# Coverage-specific extraction prompts for the two-pass strategy.
#
# Each CoveragePromptSpec names the specialty and the coverage-specific fields
# the LLM reports inside "details". The shared field list and response shape are
# added by build_coverage_prompt(), so every specialty answers in the same format.

import json
from dataclasses import dataclass
from typing import Tuple

COMMON_COVERAGE_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("coverage_subtype", "Subtype if the document names one (e.g. \"umbrella\" or \"excess\")"),
    ("each_occurrence_limit", "Per occurrence / per claim limit"),
    ("aggregate_limit", "Aggregate limit"),
    ("deductible", "Deductible, retention or SIR amount"),
    ("premium", "Premium for this coverage if shown separately"),
    ("is_occurrence_form", "true for occurrence-based coverage"),
    ("is_claims_made", "true for claims-made coverage"),
    ("retroactive_date", "Retroactive date for claims-made coverage (YYYY-MM-DD)"),
)


@dataclass(frozen=True)
class CoveragePromptSpec:
    """Prompt definition for one coverage specialty."""

    specialty: str
    detail_fields: Tuple[Tuple[str, str], ...]
    notes: Tuple[str, ...] = ()

    @property
    def detail_field_names(self) -> Tuple[str, ...]:
        return tuple(name for name, _ in self.detail_fields)


def build_coverage_prompt(spec: CoveragePromptSpec) -> str:
    """Render the system prompt for a coverage specialty."""
    lines = [
        f"You are an expert insurance document analyst specializing in {spec.specialty}.",
        "",
        "Extract these standard fields (monetary values as bare numbers, no currency symbols):",
    ]
    lines.extend(f"- {name}: {description}" for name, description in COMMON_COVERAGE_FIELDS)
    lines.append("")
    lines.append("Put these coverage-specific fields inside a \"details\" object:")
    lines.extend(f"- {name}: {description}" for name, description in spec.detail_fields)

    if spec.notes:
        lines.append("")
        lines.append("Notes:")
        lines.extend(f"- {note}" for note in spec.notes)

    example = {name: None for name, _ in COMMON_COVERAGE_FIELDS}
    example["details"] = {name: None for name in spec.detail_field_names}
    example["confidence"] = 0.9

    lines.extend([
        "",
        "Use null for anything not stated in the text.",
        "Return ONLY a JSON object with this shape:",
        json.dumps(example, indent=2),
    ])
    return "\n".join(lines)


GENERAL_LIABILITY = CoveragePromptSpec(
    specialty="Commercial General Liability (CGL) policies",
    detail_fields=(
        ("products_completed_ops_aggregate", "Products-completed operations aggregate"),
        ("personal_advertising_injury_limit", "Personal and advertising injury limit"),
        ("fire_damage_limit", "Damage to rented premises limit"),
        ("medical_expense_limit", "Medical expense limit, any one person"),
        ("aggregate_applies_to", "\"policy\", \"project\" or \"location\""),
        ("coverage_form_number", "Primary CGL form number (e.g. \"CG 00 01\")"),
        ("has_additional_insured", "true if any additional insured endorsement applies"),
        ("has_waiver_of_subrogation", "true if waiver of subrogation applies"),
        ("has_primary_noncontributory", "true if primary and non-contributory applies"),
        ("has_blanket_additional_insured", "true if blanket additional insured applies"),
        ("endorsements", "Array of {form_number, title, description}"),
        ("exclusions", "Array of exclusion descriptions"),
        ("classification_codes", "Array of {code, description}"),
    ),
    notes=("For a BOP, extract only the liability portion here.",),
)

COMMERCIAL_PROPERTY = CoveragePromptSpec(
    specialty="Commercial Property policies",
    detail_fields=(
        ("building_limit", "Building limit"),
        ("contents_limit", "Business personal property limit"),
        ("business_income_limit", "Business income / extra expense limit"),
        ("blanket_building_limit", "Blanket building limit"),
        ("blanket_contents_limit", "Blanket contents limit"),
        ("valuation", "\"RC\", \"ACV\" or \"Agreed\""),
        ("coinsurance_percent", "Coinsurance percentage (80, 90, 100)"),
        ("covered_perils", "\"basic\", \"broad\" or \"special\" causes of loss"),
        ("equipment_breakdown_included", "true if equipment breakdown is included"),
        ("ordinance_or_law_included", "true if ordinance or law is included"),
        ("locations", "Array of {address, building_limit, contents_limit, deductible}"),
        ("coverage_form_number", "Property form number (e.g. \"CP 00 10\")"),
    ),
    notes=("aggregate_limit is the total property limit (blanket or single).",),
)

BUSINESS_AUTO = CoveragePromptSpec(
    specialty="Commercial Auto / Business Auto policies",
    detail_fields=(
        ("liability_limit_type", "\"CSL\" or \"split\""),
        ("bodily_injury_per_person", "Split limit, bodily injury per person"),
        ("bodily_injury_per_accident", "Split limit, bodily injury per accident"),
        ("property_damage_limit", "Split limit, property damage"),
        ("um_uim_limit", "Uninsured / underinsured motorist limit"),
        ("medical_payments_limit", "Medical payments limit"),
        ("comprehensive_deductible", "Comprehensive deductible"),
        ("collision_deductible", "Collision deductible"),
        ("hired_auto_included", "true if hired auto liability is covered"),
        ("non_owned_auto_included", "true if non-owned auto liability is covered"),
        ("vehicles", "Array of {year, make, model, vin, symbol}"),
    ),
    notes=(
        "each_occurrence_limit is the combined single limit.",
        "Use the collision deductible as the main deductible.",
    ),
)

WORKERS_COMPENSATION = CoveragePromptSpec(
    specialty="Workers Compensation policies",
    detail_fields=(
        ("statutory_limits", "true (always true for workers compensation)"),
        ("employers_liability_disease_each", "Disease, each employee limit"),
        ("employers_liability_disease_policy", "Disease, policy limit"),
        ("experience_mod", "Experience modification factor (e.g. 0.95)"),
        ("class_codes", "Array of {code, description, rate, payroll}"),
        ("states_covered", "Array of 2-letter state codes"),
        ("other_states_coverage", "true if Other States coverage is included"),
        ("waiver_of_subrogation", "true if a blanket waiver of subrogation applies"),
    ),
    notes=("each_occurrence_limit is the Employers Liability each accident limit.",),
)

UMBRELLA_EXCESS = CoveragePromptSpec(
    specialty="Umbrella and Excess Liability policies",
    detail_fields=(
        ("self_insured_retention", "SIR amount"),
        ("is_following_form", "true for a following-form policy"),
        ("underlying_coverages", "Array of {coverage_type, required_limit, actual_limit}"),
        ("defense_coverage", "\"inside\", \"outside\" or \"supplementary\""),
    ),
    notes=(
        "coverage_subtype is \"umbrella\" or \"excess\".",
        "Report the SIR as the deductible as well.",
    ),
)

CLAIMS_MADE_LIABILITY = CoveragePromptSpec(
    specialty="claims-made liability policies (professional, D&O, EPL, cyber, medical malpractice)",
    detail_fields=(
        ("defense_inside_limits", "true if defense costs erode the limit"),
        ("extended_reporting_period_days", "Days of extended reporting (tail) available"),
        ("prior_acts_date", "Prior acts date (YYYY-MM-DD)"),
        ("coverage_trigger", "\"claims_made\", \"claims_made_reported\" or \"occurrence\""),
        ("sublimits", "Array of {name, limit}"),
        ("exclusions", "Array of key exclusion descriptions"),
    ),
    notes=(
        "These coverages are almost always claims-made: set is_claims_made accordingly.",
        "each_occurrence_limit is the per claim limit.",
    ),
)

PROPERTY_EXTENSION = CoveragePromptSpec(
    specialty="property extension coverages (wind/hail, flood, earthquake, difference in conditions)",
    detail_fields=(
        ("deductible_type", "\"flat\" or \"percentage\""),
        ("deductible_percentage", "Percentage deductible (2 for 2%)"),
        ("deductible_minimum", "Minimum deductible when percentage-based"),
        ("deductible_maximum", "Maximum deductible when percentage-based"),
        ("waiting_period_hours", "Waiting period before coverage applies"),
        ("covered_perils", "Array of covered perils"),
        ("excluded_perils", "Array of excluded perils"),
        ("sublimit", "Sublimit within a larger property policy"),
    ),
)

MARINE_EQUIPMENT = CoveragePromptSpec(
    specialty="marine and equipment coverages (inland marine, ocean marine, builders risk, boiler and machinery)",
    detail_fields=(
        ("covered_property_types", "Array of covered property categories"),
        ("valuation", "\"RC\", \"ACV\", \"Agreed\" or \"Stated\""),
        ("territory", "Geographic territory"),
        ("transit_coverage", "true if transit is covered"),
        ("project_value", "Total project value (builders risk)"),
        ("project_address", "Project location (builders risk)"),
        ("soft_costs_included", "true if soft costs are covered"),
        ("scheduled_items", "Array of {description, limit}"),
        ("blanket_limit", "Blanket limit for unscheduled items"),
    ),
)

POLLUTION_LIABILITY = CoveragePromptSpec(
    specialty="Pollution Liability policies",
    detail_fields=(
        ("cleanup_costs_limit", "Cleanup / remediation costs limit"),
        ("first_party_coverage", "true if first-party cleanup is covered"),
        ("third_party_coverage", "true if third-party injury and damage are covered"),
        ("mold_coverage", "true if mold is covered"),
        ("transportation_coverage", "true if pollution in transit is covered"),
        ("covered_locations", "Array of covered locations"),
    ),
)

GARAGE_LIABILITY = CoveragePromptSpec(
    specialty="Garage Liability policies",
    detail_fields=(
        ("garagekeepers_limit", "Garagekeepers limit"),
        ("garagekeepers_deductible", "Garagekeepers deductible"),
        ("dealers_coverage", "true if dealers physical damage is included"),
        ("customer_auto_coverage", "true if customer autos are covered"),
        ("covered_autos_symbol", "Covered autos symbol (21, 22, ...)"),
    ),
)

LIQUOR_LIABILITY = CoveragePromptSpec(
    specialty="Liquor Liability policies",
    detail_fields=(
        ("assault_battery_coverage", "true if assault and battery is covered"),
        ("host_liquor_vs_vendor", "\"host\" or \"vendor\""),
        ("minors_exclusion", "true if serving minors is excluded"),
        ("states_covered", "Array of 2-letter state codes"),
    ),
)

PRODUCT_LIABILITY = CoveragePromptSpec(
    specialty="standalone Product Liability policies",
    detail_fields=(
        ("products_aggregate", "Products aggregate"),
        ("completed_ops_aggregate", "Completed operations aggregate"),
        ("recall_coverage", "true if product recall is covered"),
        ("recall_limit", "Product recall limit"),
        ("vendor_coverage", "true if vendors are additional insureds"),
        ("worldwide_coverage", "true if coverage applies worldwide"),
    ),
)

CRIME_FIDELITY = CoveragePromptSpec(
    specialty="Crime and Fidelity policies",
    detail_fields=(
        ("employee_theft_limit", "Employee theft limit"),
        ("forgery_limit", "Forgery or alteration limit"),
        ("computer_fraud_limit", "Computer fraud limit"),
        ("funds_transfer_fraud_limit", "Funds transfer fraud limit"),
        ("social_engineering_limit", "Social engineering fraud sublimit"),
        ("money_securities_limit", "Money and securities limit"),
        ("client_coverage", "true if client (third-party) coverage is included"),
        ("erisa_coverage", "true if ERISA fidelity coverage is included"),
    ),
    notes=("each_occurrence_limit is the single loss limit.",),
)

SURETY_BOND = CoveragePromptSpec(
    specialty="Surety Bonds",
    detail_fields=(
        ("bond_type", "bid, performance, payment, license, permit, ..."),
        ("penal_sum", "Bond penalty amount"),
        ("principal", "Bonded party"),
        ("obligee", "Protected party"),
        ("bond_term", "Term of the bond, or \"continuous\""),
        ("conditions", "Array of bond conditions"),
    ),
    notes=("Report the penal sum as each_occurrence_limit as well.",),
)

AVIATION = CoveragePromptSpec(
    specialty="Aviation insurance",
    detail_fields=(
        ("hull_coverage", "Hull / physical damage limit"),
        ("hull_deductible", "Hull deductible"),
        ("liability_limit", "Aircraft liability limit"),
        ("passenger_liability_limit", "Passenger liability sublimit"),
        ("territory", "Geographic territory"),
        ("pilot_warranty", "Pilot qualifications / warranty"),
        ("aircraft", "Array of {year, make, model, tail_number}"),
    ),
)

GENERIC = CoveragePromptSpec(
    specialty="commercial insurance coverages",
    detail_fields=(
        ("sublimits", "Array of {name, limit}"),
        ("endorsements", "Special conditions or endorsements"),
        ("extensions", "Coverage extensions"),
        ("exclusions", "Excluded items or activities"),
        ("scheduled_items", "Scheduled items or locations"),
        ("additional_info", "Any other relevant coverage information"),
    ),
)
