"""
Tests for lead resolution by phone number.
"""
from leadnurture.models import Lead, User, OperatorSettings
from leadnurture.models.lead import LeadStatus
from leadnurture.services.phone_matcher import PhoneNumberMatcher


async def _add_lead(session, operator_id, phone, suffix, name="Someone"):
    lead = Lead(operator_id=operator_id, name=name, phone=phone, phone_suffix=suffix)
    session.add(lead)
    await session.commit()
    await session.refresh(lead)
    return lead


async def test_exact_match(session, lead):
    found = await PhoneNumberMatcher(session).match("+1 (909) 569-7757")
    assert found.id == lead.id


async def test_suffix_match_tolerates_missing_country_code(session, operator):
    stored = await _add_lead(session, operator.id, "9095697757", "9095697757")
    found = await PhoneNumberMatcher(session).match("+19095697757")
    assert found.id == stored.id


async def test_scan_finds_stale_suffix_and_backfills(session, operator):
    stored = await _add_lead(session, operator.id, "+1 909 569 7757", "0000000000")
    found = await PhoneNumberMatcher(session).match("19095697757")
    assert found.id == stored.id
    await session.refresh(found)
    assert found.phone_suffix == "9095697757"


async def test_no_match(session, lead):
    assert await PhoneNumberMatcher(session).match("+13105550100") is None


async def test_matching_is_scoped_to_receiving_operator(session, lead):
    other = User(email="other@example.com", phone_number="+13105550199", phone_suffix="3105550199")
    session.add(other)
    await session.commit()
    await session.refresh(other)
    
    matcher = PhoneNumberMatcher(session)
    # Texting the other operator's number must not reach this operator's lead
    assert await matcher.match(lead.phone, other.id) is None
    new_lead, created = await matcher.resolve_or_create("+19095697757", "+13105550199")
    assert created
    assert new_lead.id != lead.id
    assert new_lead.operator_id == other.id


async def test_unknown_receiving_number_falls_back_to_global_match(session, lead):
    found, created = await PhoneNumberMatcher(session).resolve_or_create("+19095697757", "+18005550000")
    assert not created
    assert found.id == lead.id


async def test_unknown_number_creates_placeholder_lead(session, operator):
    settings_row = OperatorSettings(operator_id=operator.id, ai_assistant_default=False)
    session.add(settings_row)
    await session.commit()
    
    lead, created = await PhoneNumberMatcher(session).resolve_or_create("+13105550100", operator.phone_number)
    assert created
    assert lead.name == "Lead +1 (310) 555-0100"
    assert lead.phone == "13105550100"
    assert lead.phone_suffix == "3105550100"
    assert lead.status == LeadStatus.NEW
    assert lead.operator_id == operator.id
    assert lead.ai_assistant_enabled is False
