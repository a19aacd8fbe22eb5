from crm_assistant.security import sanitize_input


def test_strips_script_and_handlers() -> None:
    text = '<script>alert("x")</script> Show me <iframe src="y"></iframe>customers at risk '

    assert sanitize_input(text) == "Show me customers at risk"
    assert sanitize_input("javascript:void(0) revenue") == "void(0) revenue"
    assert sanitize_input('<img onerror="x"> today') == '<img "x"> today'


def test_leaves_ordinary_questions_alone() -> None:
    assert sanitize_input("How much money = revenue today?") == "How much money = revenue today?"
    assert sanitize_input("") == ""
