"""Prompt builder for hairstyle composition."""


def build_hairstyle_prompt(
    style: str | None = None,
    color: str | None = None,
    with_reference: bool = False,
) -> str:
    """Build the instruction sent to the image model with the photos.

    Args:
        style: Hairstyle category, e.g. "ボブ"
        color: Hair color; empty or None keeps the color of the selfie
        with_reference: Whether a hairstyle reference photo follows the selfie

    Returns:
        Instruction text
    """
    if with_reference:
        parts = ["ユーザーの顔写真をベースに、モデル写真の髪型を自然に合成してください。"]
    else:
        parts = ["ユーザーの顔写真をベースに、新しい髪型を自然に合成してください。"]

    if style:
        parts.append(f"髪型のカテゴリは「{style}」です。")

    if color:
        parts.append(f"髪色は「{color}」で仕上げてください。")
    else:
        parts.append("髪色は顔写真のままでもOKです。")

    parts.append("背景は残し、全体のトーンは明るめで自然に整えてください。")
    parts.append("出力は縦構図（3:4）で、スマホ向けに見やすく生成してください。")

    return " ".join(parts)
