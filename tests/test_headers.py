import unittest

from fcn_tracker.errors import ImportParseError
from fcn_tracker.importer.headers import HEADER_SCAN_ROWS, find_header, match_columns


class HeaderMatchTests(unittest.TestCase):
    def test_product_anchor_on_first_row(self):
        header = find_header([["隨便", "產品名稱", "幣別"], ["x", "FCN A", "USD"]])
        self.assertEqual(header.row_index, 0)
        self.assertEqual(header.index_for("product"), 1)
        self.assertEqual(header.index_for("currency"), 2)
        self.assertIsNone(header.index_for("client"))

    def test_title_rows_above_header_are_skipped(self):
        grid = [
            ["2024 FCN 持倉", "", ""],
            ["", "", ""],
            ["Client", "Product", "Underlying"],
        ]
        header = find_header(grid)
        self.assertEqual(header.row_index, 2)
        self.assertEqual(header.columns, {"product": 1, "client": 0, "underlyings": 2})

    def test_no_anchor_reports_first_row(self):
        with self.assertRaises(ImportParseError) as ctx:
            find_header([["foo", "bar"], ["1", "2"]])
        self.assertIn("['foo', 'bar']", str(ctx.exception))

    def test_scan_stops_after_limit(self):
        filler = [["-", "-", "-"] for _ in range(HEADER_SCAN_ROWS)]
        with self.assertRaises(ImportParseError):
            find_header(filler + [["產品", "幣別", "本金"]])
        header = find_header(filler[:-1] + [["產品", "幣別", "本金"]])
        self.assertEqual(header.row_index, HEADER_SCAN_ROWS - 1)

    def test_claimed_cells_are_not_reused(self):
        cols = match_columns(["Strike Date", "Strike", "KI", "KO", "Product"])
        self.assertEqual(cols["strike_date"], 0)
        self.assertEqual(cols["strike"], 1)
        self.assertEqual(cols["ki"], 2)
        self.assertEqual(cols["ko"], 3)
        self.assertEqual(cols["product"], 4)

    def test_synonym_priority_beats_cell_order(self):
        # "Name" comes first in the row, but "product" is the stronger synonym.
        cols = match_columns(["Name", "Product", "Currency"])
        self.assertEqual(cols["product"], 1)
        self.assertNotIn(0, cols.values())

    def test_chinese_header_row(self):
        cols = match_columns(
            ["客戶", "產品名稱", "發行商", "幣別", "本金", "年息(%)", "到期日", "KI(%)", "KO(%)", "履約(%)", "連結標的"]
        )
        self.assertEqual(
            cols,
            {
                "product": 1,
                "client": 0,
                "issuer": 2,
                "currency": 3,
                "nominal": 4,
                "coupon": 5,
                "maturity": 6,
                "underlyings": 10,
                "ki": 7,
                "ko": 8,
                "strike": 9,
            },
        )


if __name__ == "__main__":
    unittest.main()
