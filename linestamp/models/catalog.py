# linestamp/models/catalog.py
from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class TextStyle(BaseModel):
    font: str
    size: int
    color: str


class PresetConfig(BaseModel):
    style: str
    backgroundColor: str = "#FFFFFF"
    borderStyle: str = "none"
    effects: List[str] = Field(default_factory=list)
    prompts: List[str] = Field(default_factory=list)
    textStyle: Optional[TextStyle] = None


class TokenPackage(BaseModel):
    id: str
    name: str
    tokens: int
    price: int           # JPY, smallest currency unit
    description: str


def _prompts(mood: str) -> List[str]:
    return [
        f"Create a {adj} expression with {mood}"
        for adj in (
            "happy and cheerful", "surprised and amazed", "sad and crying",
            "angry and frustrated", "sleepy and tired", "excited and energetic",
            "confused and puzzled", "loving and affectionate",
        )
    ]


DEFAULT_PRESETS: Dict[str, dict] = {
    "simple-white": {
        "label": "シンプル白背景",
        "description": "シンプルな白背景で清潔感のあるスタンプ",
        "thumbnailUrl": "",
        "config": PresetConfig(
            style="simple",
            backgroundColor="#FFFFFF",
            borderStyle="none",
            effects=[],
            prompts=_prompts("simple white background, kawaii style"),
        ).model_dump(exclude_none=True),
    },
    "colorful-pop": {
        "label": "カラフルポップ",
        "description": "カラフルで明るい雰囲気のスタンプ",
        "thumbnailUrl": "",
        "config": PresetConfig(
            style="pop",
            backgroundColor="#FFE4E1",
            borderStyle="round",
            effects=["glow", "shadow"],
            prompts=_prompts("colorful pop art background, bright colors"),
        ).model_dump(exclude_none=True),
    },
    "vintage-retro": {
        "label": "ヴィンテージレトロ",
        "description": "レトロな風合いでノスタルジックなスタンプ",
        "thumbnailUrl": "",
        "config": PresetConfig(
            style="vintage",
            backgroundColor="#F5F5DC",
            borderStyle="classic",
            effects=["sepia", "grain"],
            prompts=_prompts("vintage retro style, sepia tones and film grain"),
        ).model_dump(exclude_none=True),
    },
}

TOKEN_PACKAGES: Dict[str, TokenPackage] = {
    "50tokens": TokenPackage(
        id="50tokens", name="50トークンパック", tokens=50, price=500,
        description="お試しパック。スタンプ10枚作成可能",
    ),
    "200tokens": TokenPackage(
        id="200tokens", name="200トークンパック", tokens=200, price=2000,
        description="人気パック。スタンプ50枚作成可能",
    ),
    "1000tokens": TokenPackage(
        id="1000tokens", name="1000トークンパック", tokens=1000, price=9800,
        description="大容量パック。スタンプ200枚作成可能",
    ),
}
