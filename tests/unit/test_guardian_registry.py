"""Unit tests for Guardian Registry (guardian_engine/gamification/guardian_registry.py)"""
import pytest

from guardian_engine.exceptions import CatalogError, UnknownGuardianError, ValidationError
from guardian_engine.gamification.guardian_registry import (
    EVOLUTION_STAGES,
    GUARDIANS,
    GuardianRegistry,
    can_unlock_guardian,
    get_aura_level,
    get_energy_to_next_stage,
    get_guardians_by_attribute,
    get_guardians_by_tier,
    get_registry,
    get_unlock_cost,
)
from guardian_engine.models.guardian import GuardianAttribute, UnlockCondition


# ============================================================================
# Catalog Tests
# ============================================================================

def test_default_catalog():
    """Test the default catalog has one T1 and one T2 guardian per attribute"""
    registry = GuardianRegistry()

    assert len(registry.guardians) == 6
    assert registry.max_stage == 4
    for attribute in GuardianAttribute:
        tiers = sorted(g.tier for g in get_guardians_by_attribute(attribute, registry))
        assert tiers == [1, 2]


def test_tier_lookup():
    """Test guardians by tier"""
    assert {g.id for g in get_guardians_by_tier(1)} == {"horyu", "hanase", "kitama"}
    assert {g.id for g in get_guardians_by_tier(2)} == {"shishimaru", "shiroko", "hoshimaru"}


def test_tier2_prerequisites():
    """Test each tier 2 guardian requires its attribute's tier 1 at stage 2"""
    registry = get_registry()
    for guardian in get_guardians_by_tier(2, registry):
        condition = guardian.unlock_condition
        prerequisite = registry.get_guardian(condition.prerequisite_guardian_id)
        assert prerequisite.tier == 1
        assert prerequisite.attribute == guardian.attribute
        assert condition.prerequisite_stage == 2
        assert condition.energy_cost == 500


def test_unknown_guardian():
    """Test lookups of ids outside the catalog"""
    with pytest.raises(UnknownGuardianError) as exc_info:
        get_registry().get_guardian("phoenix")

    assert exc_info.value.guardian_id == "phoenix"
    assert exc_info.value.context["field"] == "guardian_id"


def test_registry_is_read_only():
    """Test the catalog mapping cannot be modified"""
    registry = GuardianRegistry()

    with pytest.raises(TypeError):
        registry.guardians["phoenix"] = GUARDIANS[0]


def test_default_registry_is_cached():
    """Test the default registry is built once"""
    assert get_registry() is get_registry()


# ============================================================================
# Catalog Validation Tests
# ============================================================================

def test_duplicate_guardian_rejected():
    """Test duplicate ids fail at construction"""
    with pytest.raises(CatalogError):
        GuardianRegistry(GUARDIANS + (GUARDIANS[0],))


def test_tier2_without_prerequisite_rejected():
    """Test a tier 2 guardian must name a prerequisite"""
    broken = GUARDIANS[1].model_copy(update={"unlock_condition": UnlockCondition(energy_cost=500)})
    guardians = (GUARDIANS[0], broken) + GUARDIANS[2:]

    with pytest.raises(CatalogError):
        GuardianRegistry(guardians)


def test_cross_attribute_prerequisite_rejected():
    """Test a prerequisite must share the attribute"""
    broken = GUARDIANS[1].model_copy(update={
        "unlock_condition": UnlockCondition(
            energy_cost=500, prerequisite_guardian_id="hanase", prerequisite_stage=2
        )
    })
    guardians = (GUARDIANS[0], broken) + GUARDIANS[2:]

    with pytest.raises(CatalogError):
        GuardianRegistry(guardians)


@pytest.mark.parametrize("thresholds", [
    [10, 30, 150, 600, 2000],   # stage 0 must be free
    [0, 30, 30, 600, 2000],     # not strictly ascending
    [0, 150, 30, 600, 2000],    # descending
    [0, 30, 150],               # wrong length
])
def test_invalid_thresholds_rejected(thresholds):
    """Test broken stage tables fail at construction"""
    with pytest.raises(CatalogError):
        GuardianRegistry.with_thresholds(thresholds)


def test_weakening_aura_rejected():
    """Test aura intensity must not decrease with stage"""
    stages = list(EVOLUTION_STAGES)
    stages[3] = stages[3].model_copy(update={"aura_intensity": 10})

    with pytest.raises(CatalogError):
        GuardianRegistry(GUARDIANS, stages)


# ============================================================================
# Stage Tests
# ============================================================================

@pytest.mark.parametrize("invested,stage", [
    (0, 0),
    (29, 0),
    (30, 1),
    (149, 1),
    (150, 2),
    (599, 2),
    (600, 3),
    (1999, 3),
    (2000, 4),
    (50_000, 4),
])
def test_default_stage_boundaries(invested, stage):
    """Test stage is the highest threshold reached"""
    assert get_registry().current_stage(invested) == stage


def test_custom_stage_table(short_stage_registry):
    """Test a registry built with different thresholds"""
    assert short_stage_registry.current_stage(49) == 0
    assert short_stage_registry.current_stage(50) == 1
    assert short_stage_registry.current_stage(349) == 2
    assert short_stage_registry.current_stage(700) == 4


def test_ability_follows_stage_table(short_stage_registry):
    """Test the ability switches on at stage 3 of whichever table is in use"""
    assert get_registry().ability_active(599) is False
    assert get_registry().ability_active(600) is True
    assert short_stage_registry.ability_active(349) is False
    assert short_stage_registry.ability_active(350) is True


def test_stage_never_decreases():
    """Test stage is monotonic in invested energy"""
    registry = get_registry()
    stages = [registry.current_stage(invested) for invested in range(0, 2500, 7)]
    assert stages == sorted(stages)


def test_negative_invested_rejected():
    with pytest.raises(ValidationError):
        get_registry().current_stage(-1)


def test_unknown_stage_rejected():
    with pytest.raises(ValidationError):
        get_registry().get_stage(5)


def test_energy_to_next_stage():
    """Test distance to the next evolution"""
    assert get_energy_to_next_stage(100) == {
        "next_stage": 2,
        "required": 150,
        "current": 100,
        "remaining": 50,
    }
    assert get_energy_to_next_stage(2000) is None


def test_aura_level():
    """Test aura interpolates between stages"""
    assert get_aura_level(0) == 0
    assert get_aura_level(30) == 20
    assert get_aura_level(90) == 35
    assert get_aura_level(150) == 50
    assert get_aura_level(5000) == 100


# ============================================================================
# Unlock Eligibility Tests
# ============================================================================

def test_first_tier1_is_free(profile_factory):
    """Test a user without guardians unlocks a starter for free"""
    profile = profile_factory(current=0)

    eligibility = can_unlock_guardian("horyu", profile)

    assert eligibility.can_unlock is True
    assert eligibility.energy_cost == 0


def test_second_tier1_costs_energy(profile_factory):
    """Test the free unlock applies to the first guardian only"""
    profile = profile_factory(current=100, guardians={"horyu": 0})

    eligibility = can_unlock_guardian("hanase", profile)

    assert get_unlock_cost("hanase", profile) == 200
    assert eligibility.can_unlock is False
    assert eligibility.reason == "Not enough energy (200 needed, 100 available)"


def test_tier2_needs_prerequisite_unlocked(profile_factory):
    """Test tier 2 is refused while its tier 1 is locked"""
    profile = profile_factory(current=1000, guardians={"horyu": 200})

    eligibility = can_unlock_guardian("shiroko", profile)

    assert eligibility.can_unlock is False
    assert eligibility.reason == "Unlock Flower Spirit first"


def test_tier2_needs_prerequisite_stage(profile_factory):
    """Test tier 2 is refused while its tier 1 is below stage 2"""
    profile = profile_factory(current=500, guardians={"horyu": 30})

    eligibility = can_unlock_guardian("shishimaru", profile)

    assert eligibility.can_unlock is False
    assert eligibility.reason == "Grow Fire Dragon to Juvenile (stage 2) first"


def test_tier2_unlockable(profile_factory):
    """Test tier 2 with grown prerequisite and enough energy"""
    profile = profile_factory(current=500, guardians={"horyu": 150})

    eligibility = can_unlock_guardian("shishimaru", profile)

    assert eligibility.can_unlock is True
    assert eligibility.energy_cost == 500


def test_tier2_one_energy_short(profile_factory):
    """Test energy check comes after the prerequisite check"""
    profile = profile_factory(current=499, guardians={"horyu": 150})

    eligibility = can_unlock_guardian("shishimaru", profile)

    assert eligibility.can_unlock is False
    assert "500 needed" in eligibility.reason


def test_already_unlocked(profile_factory):
    profile = profile_factory(current=1000, guardians={"horyu": 0})

    eligibility = can_unlock_guardian("horyu", profile)

    assert eligibility.can_unlock is False
    assert eligibility.reason == "Already unlocked"


def test_prerequisite_stage_uses_given_registry(profile_factory, short_stage_registry):
    """Test prerequisite stage is judged against the registry passed in"""
    profile = profile_factory(current=500, guardians={"horyu": 140})

    assert can_unlock_guardian("shishimaru", profile).can_unlock is False
    # 140 is below the stage 2 threshold of 150 in both tables
    assert can_unlock_guardian("shishimaru", profile, short_stage_registry).can_unlock is False

    grown = profile_factory(current=500, guardians={"horyu": 150})
    assert can_unlock_guardian("shishimaru", grown, short_stage_registry).can_unlock is True
