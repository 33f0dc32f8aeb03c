"""User-facing copy and quick-reply sets."""

import re

SEND_REFERENCE = "モデル写真を送る📸"
FREE_INPUT = "自由入力✍️"
KEEP_COLOR = "そのまま"

TRY_AGAIN = "もう一度試す"
CHANGE_STYLE = "髪型を変える"
CHANGE_COLOR = "髪色だけ変える"

STYLE_OPTIONS = ["ショート", "ボブ", "ミディアム", "ロング", "ウルフ", "メンズ", SEND_REFERENCE, FREE_INPUT]
COLOR_OPTIONS = [KEEP_COLOR, "黒髪", "ミルクティー", "ピンクベージュ", "グレージュ", FREE_INPUT]
RESULT_OPTIONS = [TRY_AGAIN, CHANGE_STYLE, CHANGE_COLOR]

GREETING_RE = re.compile(r"^(こんにちは|こんちは|やあ|hi|hello)$", re.IGNORECASE)
REFERENCE_RE = re.compile(r"モデル写真")

GREETING = "こんにちは！まずは自撮りを送ってください📸"
ASK_PHOTO = "まずは自撮りを送ってください📸"
FACE_FIRST = "先に自撮りを送ってください📸"
FACE_RECEIVED = "ナイスショット👌 どんな髪型を試してみる？（参考写真を送ってもOK）"
FACE_UPDATED = "自撮りを更新したよ。次は髪型を選んでね✂️"
ASK_REFERENCE = "参考にしたい髪型の写真を送ってください📸（正面・明るめ推奨）"
REFERENCE_RECEIVED = "モデル髪型の写真を受け取ったよ！ 髪色も変えてみる？🎨"
ASK_STYLE_TEXT = "なりたい髪型をテキストで教えてください（例：くびれボブ、ハンサムショート 等）"
ASK_COLOR_TEXT = "髪色をテキストで教えてください（例：ピンクベージュ、ブルーブラック 等）"
ASK_COLOR = "髪色も変えてみる？🎨"
GENERATING = "AIがスタイルを生成中です…⏳"
DONE = "完成！似合ってますね✨ もう一度試す？"
GENERATION_FAILED = "ごめん、画像の生成に失敗しました。もう一度試してみてね🙏"
IMAGE_FAILED = "ごめん、写真を受け取れませんでした。もう一度送ってみてね🙏"
PLEASE_WAIT = "いま画像を生成中です。完成まで少し待ってね⏳"
NEXT_STYLE = "OK！次の髪型を選んでね✂️"
PICK_STYLE = "どの髪型にする？"
PICK_COLOR = "髪色を選んでね🎨"
