import pytest

from battlebook.common.errors import PlanValidationError
from battlebook.planning.plan import BattlePlan, color_from_token_asset_name, merge_plan_parts


def test_plan_from_mapping(plan_data):
    plan = BattlePlan.from_mapping(plan_data)

    assert plan.identification.name == "Battle of Testfield"
    assert plan.token_asset_names == ("token_blue", "token_gray")
    assert plan.map_asset_names == ("tactical_map",)
    assert plan.faction_for_token("token_gray").name == "Beta"
    assert plan.faction_for_token("token_red") is None

    first, second = plan.storyboard
    assert first.edit_count == 3
    assert first.placements[0].amount == 5
    assert first.movements[0].token_asset_name == "token_gray"
    assert second.edit_count == 0
    assert second.source_text == ""


def test_total_steps_counts_plan_tokens_map_layers_and_frames(plan_data):
    plan = BattlePlan.from_mapping(plan_data)
    # plan + 2 tokens + 2 layers for one map + 2 frames
    assert plan.total_steps == 7


def test_plan_serialization_is_stable(plan_data):
    plan = BattlePlan.from_mapping(plan_data)
    assert BattlePlan.from_mapping(plan.to_dict()) == plan


def test_token_color_is_normalized(plan_data):
    plan_data["factions"][0]["token_color"] = "Blue"
    plan = BattlePlan.from_mapping(plan_data)
    assert plan.factions[0].token_asset_name == "token_blue"


def test_duplicate_token_colors_rejected(plan_data):
    plan_data["factions"][1]["token_color"] = "blue"
    plan_data["factions"][1].pop("token_asset_name")
    with pytest.raises(PlanValidationError, match="unique"):
        BattlePlan.from_mapping(plan_data)


def test_multi_word_color_rejected(plan_data):
    plan_data["factions"][0]["token_color"] = "navy blue"
    plan_data["factions"][0].pop("token_asset_name")
    with pytest.raises(PlanValidationError, match="single lowercase word"):
        BattlePlan.from_mapping(plan_data)


def test_declared_token_name_must_match_color(plan_data):
    plan_data["factions"][0]["token_asset_name"] = "token_red"
    with pytest.raises(PlanValidationError, match="does not match its color"):
        BattlePlan.from_mapping(plan_data)


def test_plan_requires_one_tactical_map(plan_data):
    plan_data["maps"][0]["map_type"] = "regional"
    plan_data["maps"][0].pop("map_asset_name")
    for frame in plan_data["storyboard"]:
        frame["base_asset"] = "regional_map"
    with pytest.raises(PlanValidationError, match="exactly one tactical map"):
        BattlePlan.from_mapping(plan_data)


def test_regional_map_is_optional_second_map(plan_data):
    plan_data["maps"].append(
        {
            "map_type": "regional",
            "defining_features_description": "Rolling farmland.",
            "key_landmarks_description": "Two roads meeting.",
        }
    )
    plan_data["storyboard"][1]["base_asset"] = "regional_map"
    plan = BattlePlan.from_mapping(plan_data)
    assert plan.map_asset_names == ("tactical_map", "regional_map")
    assert plan.total_steps == 9


def test_unknown_map_type_rejected(plan_data):
    plan_data["maps"][0]["map_type"] = "strategic"
    with pytest.raises(PlanValidationError, match="map_type"):
        BattlePlan.from_mapping(plan_data)


def test_frame_base_asset_must_name_a_map(plan_data):
    plan_data["storyboard"][0]["base_asset"] = "regional_map"
    with pytest.raises(PlanValidationError, match="does not match any planned map"):
        BattlePlan.from_mapping(plan_data)


def test_placement_must_reference_a_faction_token(plan_data):
    plan_data["storyboard"][0]["placements"][0]["token_asset_name"] = "token_red"
    with pytest.raises(PlanValidationError, match="unknown token 'token_red'"):
        BattlePlan.from_mapping(plan_data)


def test_movement_token_is_optional_but_checked(plan_data):
    plan_data["storyboard"][0]["movements"][0].pop("token_asset_name")
    plan = BattlePlan.from_mapping(plan_data)
    assert plan.storyboard[0].movements[0].token_asset_name is None

    plan_data["storyboard"][0]["movements"][0]["token_asset_name"] = "token_red"
    with pytest.raises(PlanValidationError, match="moves unknown token"):
        BattlePlan.from_mapping(plan_data)


@pytest.mark.parametrize("amount", [2, 11, "five", True])
def test_placement_amount_bounds(plan_data, amount):
    plan_data["storyboard"][0]["placements"][0]["amount"] = amount
    with pytest.raises(PlanValidationError):
        BattlePlan.from_mapping(plan_data)


def test_integral_float_amount_accepted(plan_data):
    plan_data["storyboard"][0]["placements"][0]["amount"] = 4.0
    plan = BattlePlan.from_mapping(plan_data)
    assert plan.storyboard[0].placements[0].amount == 4


def test_label_quotes_are_stripped(plan_data):
    plan_data["storyboard"][0]["labels"][0]["text"] = '"Little Round Top"'
    plan = BattlePlan.from_mapping(plan_data)
    assert plan.storyboard[0].labels[0].text == "Little Round Top"


@pytest.mark.parametrize("missing", ["battle_identification", "factions", "maps", "storyboard"])
def test_missing_top_level_section(plan_data, missing):
    plan_data.pop(missing)
    with pytest.raises(PlanValidationError, match=missing):
        BattlePlan.from_mapping(plan_data)


def test_missing_frame_field_reports_location(plan_data):
    plan_data["storyboard"][1].pop("description")
    with pytest.raises(PlanValidationError, match=r"storyboard\[1\].*description"):
        BattlePlan.from_mapping(plan_data)


def test_merge_plan_parts_is_shallow():
    merged = merge_plan_parts([{"a": 1, "b": 2}, {"b": 3}, {"c": 4}])
    assert merged == {"a": 1, "b": 3, "c": 4}


def test_color_from_token_asset_name():
    assert color_from_token_asset_name("token_blue") == "blue"
    with pytest.raises(PlanValidationError):
        color_from_token_asset_name("tactical_map")
