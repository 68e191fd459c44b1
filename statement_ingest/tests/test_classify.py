"""
Tests for pattern tables, flow classification and detail inference.
"""
import pytest

from ..core.classify import DetailInferrer, FlowClassifier, FlowDirection, build_classifiers
from ..core.patterns import PatternLabel, PatternTables, default_categories, default_tables
from ..models.schema import DEFAULT_CHANNEL, DEFAULT_ITEM_TYPE


class TestPatternTables:

    def test_shipped_tables_load(self):
        tables = default_tables()
        assert "ยอดยกมา" in tables.inflow
        assert "REFUND" in tables.inflow
        assert tables.channels[0].label == "K PLUS"
        assert "TRUE" in tables.category_hints["บิลบ้าน(ไฟ/น้ำ/เน็ต/โทร)"]

    def test_hints_refer_to_default_categories(self):
        names = {category.name for category in default_categories()}
        assert set(default_tables().category_hints) <= names

    def test_default_categories(self):
        categories = default_categories()
        assert len(categories) == 11
        assert categories[0].name == "อาหาร/เครื่องดื่ม"
        assert all(category.active for category in categories)

    def test_load_from_directory(self, tmp_path):
        (tmp_path / "inflow.yaml").write_text("inflow:\n  - PAYDAY\n", encoding='utf-8')
        (tmp_path / "channels.yaml").write_text(
            "channels:\n  - {pattern: 'APP', label: App}\n", encoding='utf-8')
        tables = PatternTables.load(tmp_path)
        assert tables.inflow == ("PAYDAY",)
        assert tables.channels[0].label == "App"
        assert tables.item_types == ()
        assert tables.category_hints == {}

    def test_entry_without_label_rejected(self, tmp_path):
        (tmp_path / "channels.yaml").write_text(
            "channels:\n  - {pattern: 'APP'}\n", encoding='utf-8')
        with pytest.raises(ValueError):
            PatternTables.load(tmp_path)

    def test_invalid_regex_rejected(self):
        with pytest.raises(ValueError):
            PatternLabel("(unclosed", "Broken")


class TestFlowClassifier:

    @pytest.fixture
    def classifier(self):
        flow, _ = build_classifiers()
        return flow

    @pytest.mark.parametrize("text", [
        "รับโอนเงิน จาก นาย ก",
        "ยอดยกมา",
        "Balance brought forward",
        "refund shopee",
        "ดอกเบี้ยเงินฝาก",
    ])
    def test_inflows(self, classifier, text):
        assert classifier.classify(text) is FlowDirection.INFLOW
        assert classifier.is_inflow(text)

    @pytest.mark.parametrize("text", [
        "ชำระเงิน K PLUS STARBUCKS",
        "โอนเงิน ค่าเช่า",
        "",
    ])
    def test_expenses(self, classifier, text):
        assert classifier.classify(text) is FlowDirection.EXPENSE

    def test_matched_phrase(self):
        classifier = FlowClassifier(["PAYDAY", "BONUS"])
        assert classifier.matched_phrase("monthly bonus") == "BONUS"
        assert classifier.matched_phrase("coffee") is None


class TestDetailInferrer:

    @pytest.fixture
    def inferrer(self):
        _, inferrer = build_classifiers()
        return inferrer

    def test_channel(self, inferrer):
        assert inferrer.infer_channel("ชำระเงิน K PLUS STARBUCKS") == "K PLUS"
        assert inferrer.infer_channel("withdraw ATM Siam") == "ATM"

    def test_item_type_order(self, inferrer):
        assert inferrer.infer_item_type("QR PromptPay shop") == "PromptPay"
        assert inferrer.infer_item_type("จ่ายบิล MEA") == "จ่ายบิล"
        assert inferrer.infer_item_type("ชำระเงิน ร้านค้า") == "ชำระเงิน"

    def test_defaults(self, inferrer):
        assert inferrer.infer_channel("coffee") == DEFAULT_CHANNEL
        assert inferrer.infer_item_type("coffee") == DEFAULT_ITEM_TYPE
        assert inferrer.infer_channel("coffee", default="SCB Easy") == "SCB Easy"

    def test_custom_tables(self):
        inferrer = DetailInferrer([PatternLabel("app", "App")], [])
        assert inferrer.infer_channel("Mobile APP") == "App"
        assert inferrer.infer_item_type("Mobile APP") == DEFAULT_ITEM_TYPE
