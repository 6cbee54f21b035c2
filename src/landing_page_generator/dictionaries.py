from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Mapping, Sequence


@dataclass(frozen=True)
class TypeRule:
    keywords: Sequence[str]
    section_type: str


# Evaluated top to bottom; first keyword hit wins.
SECTION_TYPE_RULES: Sequence[TypeRule] = (
    TypeRule(keywords=("header", "nav"), section_type="header"),
    TypeRule(keywords=("hero", "banner"), section_type="hero"),
    TypeRule(keywords=("feature", "benefit"), section_type="features"),
    TypeRule(keywords=("testimonial", "review"), section_type="testimonials"),
    TypeRule(keywords=("contact", "form"), section_type="contact"),
    TypeRule(keywords=("about", "story"), section_type="about"),
    TypeRule(keywords=("cta", "button"), section_type="cta"),
    TypeRule(keywords=("footer",), section_type="footer"),
    TypeRule(keywords=("pricing", "plan"), section_type="pricing"),
    TypeRule(keywords=("work", "management"), section_type="work"),
    TypeRule(keywords=("customise", "customize"), section_type="customization"),
    TypeRule(keywords=("data", "security"), section_type="data"),
    TypeRule(keywords=("sponsors", "partners"), section_type="sponsors"),
    TypeRule(keywords=("apps", "integrations"), section_type="apps"),
    TypeRule(keywords=("logo", "branding"), section_type="branding"),
)

DEFAULT_SECTION_TYPE = "content"

# Types a complete landing page is expected to cover
CANONICAL_SECTION_TYPES: Sequence[str] = ("header", "hero", "features", "cta", "footer")

SECTION_NAME_KEYWORDS: Sequence[str] = (
    "section",
    "header",
    "hero",
    "footer",
    "nav",
    "sidebar",
    "main",
    "content",
    "pricing",
    "testimonial",
    "feature",
    "cta",
    "about",
    "contact",
    "gallery",
    "form",
    "list",
    "grid",
    "banner",
    "slider",
    "carousel",
    "accordion",
    "tabs",
    "work",
    "data",
    "sponsors",
    "apps",
    "logo",
    "button",
    "landing",
    "page",
    "desktop",
    "mobile",
    "tablet",
)

# Auto-generated layer names such as "Group 3" or "Frame 12"
GENERIC_NAME_PATTERN = re.compile(
    r"^(group|frame|container|element|rectangle|vector|layer)\s*\d*$", re.IGNORECASE
)

PAGE_WRAPPER_KEYWORDS: Sequence[str] = (
    "page",
    "landing",
    "desktop",
    "mobile",
    "tablet",
    "wrapper",
    "container",
    "main",
    "body",
    "layout",
)

IMAGE_NAME_KEYWORDS: Sequence[str] = ("image", "img", "photo", "icon", "logo")

IMAGE_DESCRIPTIONS: Sequence[tuple[Sequence[str], str]] = (
    (("hero",), "Hero banner image"),
    (("logo",), "Company logo"),
    (("icon",), "Icon element"),
    (("profile", "avatar"), "Profile image"),
)

DEFAULT_IMAGE_DESCRIPTION = "Design image element"

FORM_FIELD_KEYWORDS: Sequence[str] = ("input", "field", "search", "email", "textarea", "password")

FORM_FIELD_TYPES: Sequence[tuple[str, str]] = (
    ("email", "email"),
    ("search", "search"),
    ("password", "password"),
    ("textarea", "textarea"),
)


# ---------------------------------------------------------------------
# Copy templates
#
# Placeholders: {business_name}, {business_overview}, {target_audience},
# {title}. Blank business fields are replaced before formatting.
# ---------------------------------------------------------------------

TEMPLATE_DEFAULTS: Mapping[str, str] = {
    "business_name": "our company",
    "business_overview": "professional services",
    "target_audience": "our clients",
}

# Lead sentence per section kind, chosen by type or by a title keyword
EXPANSION_LEADS: Mapping[str, str] = {
    "hero": (
        "Welcome to {business_name}, where we transform ideas into reality. "
        "Our comprehensive {business_overview} are designed specifically for "
        "{target_audience} who demand excellence and innovation."
    ),
    "features": (
        "Our key features include advanced technology integration, expert "
        "consultation, and ongoing support. We ensure that {target_audience} "
        "receive the highest quality solutions tailored to their specific requirements."
    ),
    "about": (
        "Founded with a vision to provide exceptional {business_overview}, "
        "{business_name} has grown to become a trusted partner for "
        "{target_audience} worldwide. Our commitment to quality and customer "
        "satisfaction drives everything we do."
    ),
    "contact": (
        "We're here to help {target_audience} achieve their goals. Contact our "
        "team today to discuss your project requirements and discover how our "
        "{business_overview} can benefit your organization."
    ),
}

EXPANSION_LEAD_TITLE_KEYWORDS: Mapping[str, str] = {
    "hero": "hero",
    "feature": "features",
    "about": "about",
    "contact": "contact",
}

EXPANSION_ROTATION: Sequence[str] = (
    "At {business_name}, we understand that {target_audience} need comprehensive "
    "solutions that deliver real results. Our team of experienced professionals "
    "brings together years of industry expertise and cutting-edge knowledge to "
    "ensure every project exceeds expectations.",
    "We pride ourselves on our commitment to excellence and attention to detail. "
    "Every solution we deliver is carefully crafted to meet the unique needs of "
    "{target_audience}, ensuring maximum value and long-term success.",
    "Our proven track record speaks for itself, with numerous satisfied clients "
    "who continue to trust us with their most important projects. We believe in "
    "building lasting relationships and providing ongoing support to help our "
    "clients achieve their goals.",
    "With a focus on innovation and quality, {business_name} has established "
    "itself as a trusted partner for {target_audience} seeking reliable, "
    "professional solutions. Our comprehensive approach ensures that every aspect "
    "of your project is handled with care and precision.",
    "We understand that every client is unique, which is why we take a "
    "personalized approach to each project. Our team works closely with "
    "{target_audience} to understand their specific requirements and deliver "
    "solutions that match their needs and objectives.",
)

EXPANSION_CLOSING = (
    "Our team combines technical expertise with creative problem-solving to "
    "deliver solutions that not only meet but exceed expectations. We believe in "
    "continuous improvement and staying ahead of industry trends to provide "
    "{target_audience} with the most effective and innovative solutions available."
)

BUSINESS_TEMPLATES: Mapping[str, str] = {
    "hero": (
        "Transform your business with {business_name}. {business_overview} "
        "Perfect for {target_audience}. Get started today and see the difference "
        "we can make for your business. Experience the power of our innovative "
        "solutions designed to help you achieve your goals faster and more efficiently."
    ),
    "features": (
        "Key features of {business_name}: {business_overview} Our solutions are "
        "designed specifically for {target_audience} to help you achieve your goals "
        "efficiently and effectively. From advanced capabilities to seamless "
        "integration, we provide everything you need to succeed in today's "
        "competitive market."
    ),
    "benefits": (
        "Benefits of choosing {business_name}: {business_overview} We specialize in "
        "serving {target_audience} with professional excellence and innovative "
        "solutions that drive results. Our proven track record and commitment to "
        "quality ensure that you get the best value for your investment while "
        "achieving your business objectives."
    ),
    "about": (
        "About {business_name}: {business_overview} We are committed to serving "
        "{target_audience} with excellence and innovation. Our team brings years of "
        "experience and dedication to every project."
    ),
    "testimonials": (
        "What our clients say about {business_name}: \"Excellent service and "
        "results!\" - Satisfied Customer. \"Professional and reliable.\" - Happy "
        "Client. \"Exceeded our expectations!\" - Valued Partner."
    ),
    "contact": (
        "Contact {business_name} today! We're here to help {target_audience} "
        "achieve their goals. Reach out to us for a consultation and discover how "
        "we can help your business grow."
    ),
    "footer": (
        "{business_name} - {business_overview} Serving {target_audience} with "
        "professional excellence. Contact us today to get started."
    ),
}

BUSINESS_TEMPLATE_ALIASES: Mapping[str, str] = {"cta": "contact"}

DEFAULT_BUSINESS_TEMPLATE = (
    "{title}: {business_overview} Perfect for {target_audience}. Learn more about "
    "how {business_name} can help you achieve your goals."
)


__all__ = [
    "TypeRule",
    "SECTION_TYPE_RULES",
    "DEFAULT_SECTION_TYPE",
    "CANONICAL_SECTION_TYPES",
    "SECTION_NAME_KEYWORDS",
    "GENERIC_NAME_PATTERN",
    "PAGE_WRAPPER_KEYWORDS",
    "IMAGE_NAME_KEYWORDS",
    "IMAGE_DESCRIPTIONS",
    "DEFAULT_IMAGE_DESCRIPTION",
    "FORM_FIELD_KEYWORDS",
    "FORM_FIELD_TYPES",
    "TEMPLATE_DEFAULTS",
    "EXPANSION_LEADS",
    "EXPANSION_LEAD_TITLE_KEYWORDS",
    "EXPANSION_ROTATION",
    "EXPANSION_CLOSING",
    "BUSINESS_TEMPLATES",
    "BUSINESS_TEMPLATE_ALIASES",
    "DEFAULT_BUSINESS_TEMPLATE",
]
