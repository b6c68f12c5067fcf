import pytest

from domain.errors import DEFAULT_ERROR_CATALOG, AppError, app_error, ensure_app_error


def test_app_error_string_representation():
    err = AppError("E-TEST", "テストメッセージ", detail="detail", symbol="AAA")
    assert str(err) == "AAA: [E-TEST] テストメッセージ (detail)"
    assert "payload" not in err.for_log()


def test_for_log_includes_payload():
    err = AppError("E-TEST", "テスト", payload={"rows": 3})
    assert err.for_log().endswith("payload={'rows': 3}")


def test_ensure_app_error_wraps_generic_exception():
    original = ValueError("bad value")
    wrapped = ensure_app_error(original, code="E-WRAP", message="ラップエラー")
    assert isinstance(wrapped, AppError)
    assert wrapped.code == "E-WRAP"
    assert wrapped.user_message == "ラップエラー"
    assert "bad value" in str(wrapped)


def test_ensure_app_error_passes_through_app_error():
    err = AppError("E-PASS", "そのまま")
    assert ensure_app_error(err) is err


def test_with_symbol_returns_copy():
    err = app_error("E-DATA-SHORT", detail="150 candles")
    tagged = err.with_symbol("ABB.ST")
    assert err.symbol is None
    assert tagged.headline().startswith("ABB.ST: [E-DATA-SHORT]")


def test_app_error_catalog_defaults():
    err = app_error("E-CSV-EMPTY")
    assert "CSV" in err.user_message
    assert err.guidance is not None
    assert "サポート" in err.help_text()


@pytest.mark.parametrize("code", sorted(DEFAULT_ERROR_CATALOG))
def test_every_catalog_entry_has_message_and_guidance(code):
    err = app_error(code)
    assert err.headline() == f"[{code}] {DEFAULT_ERROR_CATALOG[code]['message']}"
    assert err.guidance
    assert err.support_url


def test_unknown_code_uses_generic_message():
    err = app_error("E-NOPE")
    assert err.headline() == "[E-NOPE] エラーが発生しました。"
    assert err.help_text() == ""
