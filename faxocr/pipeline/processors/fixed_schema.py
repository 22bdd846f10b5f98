"""Built-in picking-list schema and instruction.

Short property keys keep the response small; ``dists`` is a flat
``"ShopCode:Quantity|..."`` string for the same reason.
"""

FIXED_EXTRACTION_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "items": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "no": {"type": "STRING", "description": "Row number"},
                    "jan": {"type": "STRING", "description": "JAN Code"},
                    "name": {
                        "type": "STRING",
                        "description": "Product Name from 3rd Column UPPER row. IGNORE numbers in LOWER row.",
                    },
                    "vCode": {
                        "type": "STRING",
                        "description": "Vendor Product Code from 4th Column UPPER row (e.g., E90604).",
                    },
                    "sz": {
                        "type": "STRING",
                        "description": "Size from 4th Column LOWER row, LEFT. Correct '1150' -> '150' if needed.",
                    },
                    "col": {
                        "type": "STRING",
                        "description": "Color from 4th Column LOWER row, RIGHT.",
                    },
                    "rTotal": {
                        "type": "NUMBER",
                        "description": "Reported Total (帳票総数) from 'Irisou' column LOWER row.",
                    },
                    "dists": {
                        "type": "STRING",
                        "description": "String format: 'ShopCode:Quantity|ShopCode:Quantity'.",
                    },
                    "box_2d": {
                        "type": "ARRAY",
                        "items": {"type": "NUMBER"},
                        "description": "Bounding box [ymin, xmin, ymax, xmax] (0-1000 scale). MUST accurately frame the specific data row visually. Do NOT rely on estimated line heights.",
                    },
                },
                "required": ["no", "rTotal", "dists", "box_2d"],
            },
        }
    },
}

FIXED_SYSTEM_PROMPT = """
あなたは「北海道三喜社」のFAX注文書（配送ピッキングリスト）処理に特化した専門AIです。
添付の画像を読み取り、以下の[処理ルール]に従ってデータを構造化し、JSONのみを出力してください。

## 1. データ抽出・クリーニングルール (最重要)
画像内の表構造（特に3列目・4列目）を詳細に解釈してください。

**注意:** 表のヘッダー行（項目名）は抽出しないでください。具体的な商品データ（No.1〜）のみを抽出対象としてください。

- **商品名 (name)**:
  - 3列目「商品名/品番」の**上段**のテキストのみを抽出してください。
  - 下段の数値は無視してください。

- **サイズ (sz)**:
  - 4列目「サイズ・カラー/取引先品番」の**下段・左側**にある数値を抽出。
  - 縦罫線が「1」と誤認識される場合（1150 -> 150）は補正してください。

- **カラー (col)**:
  - 4列目「サイズ・カラー/取引先品番」の**下段・右側**にある色名を抽出。

- **取引先品番 (vCode)**:
  - 4列目の**上段**にある英数字を抽出。

- **帳票総数 (rTotal)**:
  - 「イリソウ（入数/総数）」列の**下段**の数値を採用。

- **配送内訳 (dists)**:
  - 右側の「店コード」と「数量」のペアを抽出。形式: "店コード:数量|..."

- **位置情報 (box_2d) の重要ルール**:
  - 各行のデータの範囲を示す [ymin, xmin, ymax, xmax] (0-1000正規化座標) を出力してください。
  - **ズレ防止:** FAX画像は行間が不均一な場合があります。平均的な行の高さで推測せず、**必ず実際の破線（行区切り線）を目視して**、その行の正確なY座標範囲を取得してください。
  - 行番号が進むにつれて座標が上にズレないよう、1行ずつ確実に位置を特定してください。
  - ヘッダー行は含めないでください。

## 2. 出力形式
- JSONスキーマに従ってください。Markdownコードブロックは不要です。
"""
