import pytest

from openrouter_client.errors import ConfigurationError
from openrouter_client.messages import build_tool_declarations, format_messages, image_turn
from openrouter_client.openai_compat import ConversationTurn, ImageAttachment, ToolDefinition

MIXED = [
    {"type": "text", "text": "x"},
    {"type": "image_url", "image_url": {"url": "y"}},
]


def test_string_content_becomes_user_turn_regardless_of_role():
    turns = [
        ConversationTurn(role="system", content="be terse"),
        ConversationTurn(role="assistant", content="ok"),
        ConversationTurn(role="user", content="hi"),
    ]
    assert format_messages(turns) == [
        {"role": "user", "content": "be terse"},
        {"role": "user", "content": "ok"},
        {"role": "user", "content": "hi"},
    ]


@pytest.mark.parametrize("role", ["system", "assistant"])
def test_text_only_roles_drop_image_parts(role):
    out = format_messages([ConversationTurn(role=role, content=MIXED)])
    assert out == [{"role": role, "content": [{"type": "text", "text": "x"}]}]


def test_user_turn_keeps_text_and_images_in_order():
    out = format_messages([ConversationTurn(role="user", content=MIXED)])
    assert out == [
        {
            "role": "user",
            "content": [
                {"type": "text", "text": "x"},
                {"type": "image_url", "image_url": {"url": "y"}},
            ],
        }
    ]


def test_image_urls_are_not_validated():
    turn = ConversationTurn(role="user", content=[{"type": "image_url", "image_url": {"url": "not a url"}}])
    assert format_messages([turn])[0]["content"][0]["image_url"]["url"] == "not a url"


def test_unsupported_role_raises_configuration_error():
    turn = ConversationTurn.model_construct(role="tool", content=[{"type": "text", "text": "x"}])
    with pytest.raises(ConfigurationError):
        format_messages([turn])


def test_image_turn_without_description_has_only_the_image():
    turn = image_turn(ImageAttachment(buffer=b"abc"))
    out = format_messages([turn])
    assert out == [
        {"role": "user", "content": [{"type": "image_url", "image_url": {"url": "data:image/png;base64,YWJj"}}]}
    ]


def test_build_tool_declarations():
    assert build_tool_declarations(None) is None
    assert build_tool_declarations([]) is None
    decl = build_tool_declarations([ToolDefinition(name="scroll", description="Scroll the page")])
    assert decl == [
        {
            "type": "function",
            "function": {"name": "scroll", "description": "Scroll the page", "parameters": {}},
        }
    ]
