"""Tests for the SQLite analysis history store."""

import pytest

from chartinsight.models.analysis import AnalysisResult


def result(trend: str = "Bullish", pipeline: str = "chained") -> AnalysisResult:
    return AnalysisResult(
        trend=trend,
        structure="Higher Highs, Higher Lows",
        recommendation=f"{trend} bias",
        reasoning="Test fixture.",
        pipeline=pipeline,
    )


class TestAnalysisStore:

    @pytest.mark.asyncio
    async def test_store_and_get(self, store, chart_image):
        record_id = await store.store("user-1", chart_image, result(), trading_style="Day Trader")

        record = await store.get(record_id)

        assert record is not None
        assert record.user_id == "user-1"
        assert record.image_ref == chart_image
        assert record.pipeline == "chained"
        assert record.trading_style == "Day Trader"
        assert record.result == result()
        assert record.feedback is None
        assert record.qa == []

    @pytest.mark.asyncio
    async def test_degraded_results_are_stored(self, store, chart_image):
        degraded = AnalysisResult.degraded_result("provider down", pipeline="debate")

        record = await store.get(await store.store("user-1", chart_image, degraded))

        assert record.result.degraded is True
        assert record.summary()["degraded"] is True

    @pytest.mark.asyncio
    async def test_unknown_id(self, store):
        assert await store.get("missing") is None
        assert await store.append_qa("missing", "Q?", "A.") is False
        assert await store.set_feedback("missing", "helpful") is False

    @pytest.mark.asyncio
    async def test_list_most_recent_first(self, store, chart_image):
        first = await store.store("user-1", chart_image, result("Bullish"))
        second = await store.store("user-1", chart_image, result("Bearish", pipeline="debate"))
        await store.store("user-2", chart_image, result("Sideways"))

        records = await store.list_for_user("user-1")

        assert [r.id for r in records] == [second, first]
        summary = records[0].summary()
        assert summary["trend"] == "Bearish"
        assert summary["pipeline"] == "debate"
        assert "image_ref" not in summary

    @pytest.mark.asyncio
    async def test_list_limit(self, store, chart_image):
        for _ in range(3):
            await store.store("user-1", chart_image, result())

        assert len(await store.list_for_user("user-1", limit=2)) == 2
        assert await store.list_for_user("nobody") == []

    @pytest.mark.asyncio
    async def test_append_qa_in_order(self, store, chart_image):
        record_id = await store.store("user-1", chart_image, result())

        assert await store.append_qa(record_id, "Where is support?", "44000.") is True
        assert await store.append_qa(record_id, "And resistance?", "48000.") is True

        record = await store.get(record_id)
        assert [entry.question for entry in record.qa] == ["Where is support?", "And resistance?"]
        assert record.qa[1].answer == "48000."
        assert record.updated_at >= record.created_at

    @pytest.mark.asyncio
    async def test_feedback(self, store, chart_image):
        record_id = await store.store("user-1", chart_image, result())

        assert await store.set_feedback(record_id, "unhelpful") is True
        assert await store.set_feedback(record_id, "helpful") is True

        record = await store.get(record_id)
        assert record.feedback == "helpful"
        assert record.to_dict()["result"]["trend"] == "Bullish"

    @pytest.mark.asyncio
    async def test_invalid_feedback(self, store):
        with pytest.raises(ValueError, match="feedback must be one of"):
            await store.set_feedback("any", "meh")
