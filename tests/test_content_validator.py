import itertools

from landing_page_generator.content_validator import (
    apply_length_policy,
    business_template,
    clean_html,
    count_words,
    expand_content,
    expansion_sentences,
    last_resort_content,
    validate_section,
)
from landing_page_generator.models.run import BusinessContext, ContentLengthPolicy, LengthPolicyKind
from landing_page_generator.models.section import ComponentKey, Section


def make_section(body=None, *, order=1, section_type="hero", title="Hero", flat=False):
    components = {"title": title}
    if body is not None and not flat:
        components["content"] = body
    return Section(
        id=f"section-{order}",
        name=title,
        title=title,
        type=section_type,
        order=order,
        components=components,
        content=body if flat else None,
    )


def words(count, word="lorem"):
    return " ".join([word] * count)


def test_count_words_splits_on_whitespace():
    assert count_words("one  two\nthree\tfour") == 4
    assert count_words("") == 0
    assert count_words(None) == 0


def test_clean_html_strips_tags_and_short_leftovers():
    assert clean_html("<p>Hello <b>world</b>\n and   more</p>") == "Hello world and more"
    assert clean_html("<br/>Hi") is None
    assert clean_html(None) is None


def test_short_body_is_expanded_keeping_model_text_as_prefix(business):
    body = words(40, "analytics")
    section = make_section(body)

    outcome = apply_length_policy(section, business, ContentLengthPolicy(kind=LengthPolicyKind.medium))

    expanded = outcome.section.body_text()
    assert outcome.status == "expanded"
    assert expanded.startswith(body + " ")
    assert 100 <= count_words(expanded) <= 200
    assert outcome.word_count == count_words(expanded)
    assert outcome.added_words == count_words(expanded) - 40
    assert outcome.section.component_text(ComponentKey.title) == "Hero"


def test_flat_content_is_expanded_in_place(business):
    section = make_section(words(30), flat=True)

    outcome = apply_length_policy(section, business, ContentLengthPolicy(kind=LengthPolicyKind.short))

    assert outcome.section.content.startswith(words(30))
    assert ComponentKey.content not in outcome.section.components
    assert 50 <= count_words(outcome.section.content) <= 100


def test_list_shaped_body_is_counted_and_kept(business):
    paragraphs = ["Model paragraph one about retail dashboards.", "Model paragraph two with pricing detail."]
    section = Section(id="section-1", type="hero", order=1, components={"title": "Grow", "content": paragraphs})

    outcome = apply_length_policy(section, business, ContentLengthPolicy())

    assert section.body_text() == " ".join(paragraphs)
    assert outcome.status == "expanded"
    assert outcome.section.body_text().startswith(" ".join(paragraphs) + " ")
    assert outcome.section.component_text(ComponentKey.title) == "Grow"


def test_body_within_bounds_is_untouched(business):
    section = make_section(words(120))

    outcome = apply_length_policy(section, business, ContentLengthPolicy())

    assert outcome.status == "within"
    assert outcome.section is section
    assert not outcome.changed


def test_long_body_is_reported_not_truncated(business):
    section = make_section(words(250))

    outcome = apply_length_policy(section, business, ContentLengthPolicy())

    assert outcome.status == "over_limit"
    assert outcome.section.body_text() == words(250)
    assert outcome.notes == ["section-1 has 250 words, maximum is 200"]


def test_empty_body_gets_template_content_within_bounds(business):
    section = make_section(None, section_type="features", title="Features", order=2)

    outcome = apply_length_policy(section, business, ContentLengthPolicy(kind=LengthPolicyKind.long))

    text = outcome.section.body_text()
    assert outcome.status == "template"
    assert text.startswith("Key features of Acme Analytics")
    assert 200 <= count_words(text) <= 400


def test_custom_policy_uses_tolerance_window(business):
    policy = ContentLengthPolicy(kind=LengthPolicyKind.custom, custom_target=20)
    section = make_section(words(5))

    outcome = apply_length_policy(section, business, policy)

    assert policy.bounds == (10, 30)
    assert 10 <= outcome.word_count <= 30
    assert validate_section(outcome.section, policy) == (outcome.word_count, True)


def test_last_resort_content_is_truncated_to_the_maximum(business):
    policy = ContentLengthPolicy(kind=LengthPolicyKind.custom, custom_target=20)

    text = last_resort_content(make_section(None), business, policy)

    assert count_words(text) == 30
    assert text.startswith("Transform your business with Acme Analytics.")
    assert text.endswith(".")


def test_expansion_cut_to_exact_limit(business):
    text = expand_content(make_section(None), business, 5, word_limit=5)

    assert count_words(text) == 5
    assert text.endswith(".")
    assert expand_content(make_section(None), business, 0) == ""


def test_expansion_is_deterministic_and_rotates_by_order(business):
    first = make_section(None, section_type="pricing", title="Plans", order=1)
    second = make_section(None, section_type="pricing", title="Plans", order=2)

    run_one = list(itertools.islice(expansion_sentences(first, business), 8))
    run_two = list(itertools.islice(expansion_sentences(first, business), 8))
    shifted = list(itertools.islice(expansion_sentences(second, business), 8))

    assert run_one == run_two
    assert run_one[0] != shifted[0]
    assert run_one[1] == shifted[0]
    assert all("{" not in sentence for sentence in run_one)


def test_lead_sentence_follows_section_type(business):
    contact = make_section(None, section_type="contact", title="Reach us")

    lead = next(expansion_sentences(contact, business))

    assert lead.startswith("We're here to help independent retail owners")


def test_templates_fill_blank_business_fields():
    blank = BusinessContext(business_name="", business_overview="", target_audience="")

    text = business_template(make_section(None, section_type="about", title="About"), blank)

    assert text.startswith("About our company: professional services")
    assert "our clients" in text


def test_cta_sections_use_the_contact_template(business):
    text = business_template(make_section(None, section_type="cta", title="Start"), business)

    assert text.startswith("Contact Acme Analytics today!")


def test_unknown_types_use_the_default_template(business):
    text = business_template(make_section(None, section_type="gallery", title="Work Gallery"), business)

    assert text.startswith("Work Gallery: Analytics dashboards for growing retailers")
