from schemas import ReviewInput

ROLE_PREAMBLE = (
    "You are an expert restaurant reputation manager. "
    "Generate a response to the following customer review."
)

POSITIVE_STRATEGY = (
    "This is a POSITIVE review. Thank the reviewer warmly, highlight specific things they "
    "enjoyed (reference their words), and invite them to visit again. Be genuinely grateful."
)

NEGATIVE_STRATEGY = (
    "This is a NEGATIVE review. Acknowledge their specific concerns with empathy, sincerely "
    "apologize for their experience, offer to make it right, and invite them to contact you "
    "directly to resolve it. Never be defensive."
)

MIXED_STRATEGY = (
    "This is a MIXED review (3 stars). Thank them for their feedback, address the specific "
    "concerns they raised, highlight the positives they mentioned, and express commitment "
    "to improving."
)

TONE_GUIDE = {
    "professional": "Use a polished, professional tone. Be courteous and business-appropriate.",
    "friendly": "Use a warm, conversational, friendly tone. Be personable and approachable.",
    "empathetic": "Use a deeply empathetic and understanding tone. Show genuine care for their experience.",
    "apologetic": "Use a sincerely apologetic tone. Take full responsibility and express genuine remorse.",
}

OUTPUT_CONSTRAINTS = (
    "Write a concise, authentic response (2-4 paragraphs). Do not use generic phrases. "
    "Reference specific details from the review."
)


def select_strategy(rating: int) -> str:
    if rating >= 4:
        return POSITIVE_STRATEGY
    if rating <= 2:
        return NEGATIVE_STRATEGY
    return MIXED_STRATEGY


def build_prompt(review_input: ReviewInput) -> str:
    """Turn a review and its settings into the single user-turn instruction."""
    sections = [
        ROLE_PREAMBLE,
        select_strategy(review_input.star_rating),
        f"TONE: {TONE_GUIDE[review_input.tone]}",
    ]

    brand_lines = []
    if review_input.restaurant_name:
        brand_lines.append(f"RESTAURANT NAME: {review_input.restaurant_name}")
    if review_input.brand_voice_notes:
        brand_lines.append(f"BRAND VOICE NOTES: {review_input.brand_voice_notes}")
    if brand_lines:
        sections.append("\n".join(brand_lines))

    sections.append(f'REVIEW ({review_input.star_rating} stars):\n"{review_input.review_text}"')

    closing = OUTPUT_CONSTRAINTS
    if review_input.restaurant_name:
        closing += f" Sign off as the {review_input.restaurant_name} team."
    sections.append(closing)
    sections.append("Response:")

    return "\n\n".join(sections)
