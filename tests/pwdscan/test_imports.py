def test_root_imports():
    from pwdscan import AnalysisScheduler, ToolCallingEngine, Conversation, EndpointSpec  # noqa: F401


def test_adapter_imports():
    from pwdscan.adapters import ModelClient, OpenAIChatClient  # noqa: F401


def test_all_exports():
    """Verify all documented exports are available."""
    import pwdscan

    for name in pwdscan.__all__:
        assert getattr(pwdscan, name) is not None, name
