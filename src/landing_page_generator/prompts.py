from __future__ import annotations

import json
from typing import Any, Sequence

from .models.design import DesignExtraction
from .models.run import BusinessContext, ContentLengthPolicy, ContentPlan, DesignAnalysis, LengthPolicyKind
from .models.section import Section

LENGTH_INSTRUCTIONS = {
    LengthPolicyKind.short: "Generate SHORT content - concise, impactful messaging",
    LengthPolicyKind.medium: "Generate MEDIUM content - balanced detail and readability",
    LengthPolicyKind.long: "Generate LONG content - comprehensive, detailed information",
    LengthPolicyKind.custom: "Generate CUSTOM content - tailored to specific length requirements",
}


def length_instruction(policy: ContentLengthPolicy) -> str:
    low, high = policy.bounds
    if policy.kind is LengthPolicyKind.custom:
        word_range = f"EXACTLY {policy.custom_target} words per section (within 10 words of target)"
    else:
        word_range = f"EXACTLY {low}-{high} words per section"
    return f"{LENGTH_INSTRUCTIONS[policy.kind]}: {word_range}"


def business_block(business: BusinessContext) -> str:
    return "\n".join(
        [
            f"- Business Name: {business.business_name}",
            f"- Business Overview: {business.business_overview}",
            f"- Target Audience: {business.target_audience}",
            f"- Brand Tone: {business.brand_tone or 'professional'}",
            f"- Website URL: {business.website_url or 'Not provided'}",
        ]
    )


def section_outline(sections: Sequence[Section]) -> list[dict[str, Any]]:
    """Compact section view sent to the model; extracted geometry is left out."""
    return [
        {
            "id": section.id,
            "name": section.name,
            "title": section.title,
            "type": section.type,
            "order": section.order,
            "components": section.plain_components(),
        }
        for section in sections
    ]


def _dump(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, indent=2)


def build_planning_prompt(business: BusinessContext, extraction: DesignExtraction) -> str:
    return f"""You are an expert content strategist. Analyze the business information and the extracted design data to create a content planning strategy.

BUSINESS INFORMATION:
{business_block(business)}

EXTRACTED DESIGN SECTIONS:
{_dump(section_outline(extraction.sections))}

Return ONLY valid JSON with this exact structure:
{{
  "targetSections": ["header", "hero", "features", "cta", "footer"],
  "contentStrategy": "Strategy for content creation",
  "toneAnalysis": "How to apply the brand tone in each section",
  "audienceInsights": "Key insights about the target audience"
}}

Do not add any text before or after the JSON. Base every recommendation on the data above.
"""


def build_design_prompt(business: BusinessContext, extraction: DesignExtraction) -> str:
    layout = extraction.layout.model_dump() if extraction.layout else {}
    tokens = [token.model_dump() for token in extraction.tokens]
    return f"""You are an expert UI/UX designer. Analyze the extracted design data and produce a design analysis.

BUSINESS CONTEXT:
- Business Name: {business.business_name}
- Brand Tone: {business.brand_tone or 'professional'}

EXTRACTED DESIGN SECTIONS:
{_dump(section_outline(extraction.sections))}

LAYOUT SUMMARY:
{_dump(layout)}

DESIGN TOKENS:
{_dump(tokens)}

Return ONLY valid JSON with this exact structure:
{{
  "layoutStructure": "Recommended layout structure and grid system",
  "colorScheme": "Primary and secondary color recommendations",
  "typography": "Font family and hierarchy recommendations",
  "responsiveDesign": "Mobile-first responsive design approach",
  "accessibilityNotes": "Key accessibility considerations"
}}

Do not add any text before or after the JSON.
"""


def build_generation_prompt(
    business: BusinessContext,
    sections: Sequence[Section],
    policy: ContentLengthPolicy,
    plan: ContentPlan | None = None,
    analysis: DesignAnalysis | None = None,
) -> str:
    count = len(sections)
    context: dict[str, Any] = {}
    if plan is not None:
        context["contentPlan"] = plan.model_dump(by_alias=True, exclude={"fallback_used"})
    if analysis is not None:
        context["designAnalysis"] = analysis.model_dump(
            by_alias=True, include={"layout_structure", "color_scheme", "typography"}
        )

    return f"""You are a professional content generator that writes landing page copy for STRICTLY the extracted design sections below.

CRITICAL RULE: Use ONLY the extracted sections. Do not add, remove, merge or reorder sections.

BUSINESS INFORMATION:
{business_block(business)}

EXTRACTED DESIGN SECTIONS (USE EXACTLY THESE - NO MORE, NO LESS):
{_dump(section_outline(sections))}

ADDITIONAL CONTEXT:
{_dump(context)}

OUTPUT FORMAT:
Return a JSON array with one object per extracted section, in the same order:
[
  {{
    "id": "section-1",
    "title": "Customized title",
    "type": "hero",
    "order": 1,
    "components": {{
      "title": "Customized title",
      "subtitle": "Customized subtitle",
      "content": "Customized body copy",
      "buttons": ["Customized button"]
    }}
  }}
]

RULES:
1. Keep the same id, type and order as each extracted section.
2. Only use these component keys: title, subtitle, content, buttons, images, links, messages, items, forms, ctas.
3. Write content specific to {business.business_name} and its target audience.
4. Match the brand tone: {business.brand_tone or 'professional'}.
5. {length_instruction(policy)} in the "content" component.
6. Return ONLY the JSON array - no other text.

IMPORTANT: Your response MUST contain exactly {count} sections - no more, no less.
"""


__all__ = [
    "LENGTH_INSTRUCTIONS",
    "length_instruction",
    "business_block",
    "section_outline",
    "build_planning_prompt",
    "build_design_prompt",
    "build_generation_prompt",
]
