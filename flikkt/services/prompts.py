"""
Analysis prompt templates.

Both variants share the persona, the scoring rubric and the output contract;
they differ only in how the product is identified.
"""

from collections.abc import Sequence

from flikkt.models.domain import NOT_RECOGNIZED_PRODUCT_NAME, Medication

PERSONA = "You are a clinical pharmacist with expertise in food-drug interactions."

ALTERNATIVES_THRESHOLD = 60

SCORING_RUBRIC = """SCORING CRITERIA (based on medication interaction safety only):
- 90-100: No interaction concerns, may provide nutritional benefits for condition
- 80-89: Safe from medication perspective, no significant interactions
- 70-79: Generally safe, minor timing considerations may apply
- 60-69: Caution advised, timing or quantity may matter
- 50-59: Moderate interaction risk, monitoring recommended
- 30-49: Significant interaction, careful monitoring needed
- 0-29: High interaction risk, avoid or consult healthcare provider"""

_ASSESSMENT_STEPS = """   - Known food-drug interactions{subject} based on clinical evidence
   - Effects on medication absorption (timing, bioavailability)
   - Potential for increased/decreased medication effects
   - Risk of side effect amplification
   - Nutritional impact on the medical condition being treated
3. Consider dosage and frequency when assessing interaction severity
4. Account for the specific medical purposes when making assessments
5. Be factual and evidence-based - only mention what is clinically relevant"""

OUTPUT_CONTRACT = f"""IMPORTANT: Focus only on medication safety - do not make general health/nutrition judgments.

If the compatibility score is below {ALTERNATIVES_THRESHOLD} (high interaction risk), MUST provide 2-3 alternative products that would be safer with the patient's medications.

Return ONLY valid JSON with:
- productName: string (use "{NOT_RECOGNIZED_PRODUCT_NAME}" if not a real product)
- compatibilityScore: number (0-100) or null if unidentifiable
- interactionLevel: "positive" | "neutral" | "negative"
- pros: array of positive aspects regarding medication interactions
- cons: array of concerns or precautions regarding medication interactions
- alternatives: array of 2-3 safer alternative products (only if score < {ALTERNATIVES_THRESHOLD}, otherwise empty array)"""


def format_medication_profile(medications: Sequence[Medication]) -> str:
    return "\n".join(medication.describe() for medication in medications)


def build_analysis_prompt(
    medications: Sequence[Medication], product_name: str | None = None
) -> str:
    """
    Build the analysis prompt.

    With a product name the model is asked to look the product up by name;
    without one it is asked to identify the product from the attached image.
    """
    profile = format_medication_profile(medications)

    if product_name is None:
        task = (
            "Analyze this food/product image for potential interactions "
            "with the following medications:"
        )
        identification = (
            "1. First identify the food/product in the image. If unclear or not a real "
            f'food/product, return productName: "{NOT_RECOGNIZED_PRODUCT_NAME}" and '
            "compatibilityScore: null.\n"
            "2. For identified foods/products, research and consider:"
        )
        subject = ""
    else:
        task = (
            f'Analyze the food/product "{product_name}" for potential interactions '
            "with the following medications:"
        )
        identification = (
            f'1. First determine if "{product_name}" is a real, recognizable food or product. '
            "If it's gibberish, nonsense, or not a real food/product, respond with "
            f'productName: "{NOT_RECOGNIZED_PRODUCT_NAME}" and compatibilityScore: null.\n'
            "2. For real foods/products, research and consider:"
        )
        subject = f" with {product_name}"

    return "\n\n".join(
        [
            f"{PERSONA} {task}",
            f"PATIENT MEDICATION PROFILE:\n{profile}",
            "ANALYSIS REQUIREMENTS:\n"
            + identification
            + "\n"
            + _ASSESSMENT_STEPS.format(subject=subject),
            SCORING_RUBRIC,
            OUTPUT_CONTRACT,
        ]
    )
