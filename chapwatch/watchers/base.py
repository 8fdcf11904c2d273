from dataclasses import InitVar, dataclass, field
from typing import List, Optional

from ..utils.text import clean_title, normalize_url


@dataclass(frozen=True)
class CandidateItem:
    url: str
    title: str
    number: Optional[str] = None
    identifier: str = field(default="", compare=False)
    # False when title/number are already plain text (e.g. from get_text())
    decode_entities: InitVar[bool] = True

    def __post_init__(self, decode_entities: bool):
        object.__setattr__(self, "title", clean_title(self.title, decode_entities))
        if self.number is not None:
            object.__setattr__(self, "number", clean_title(self.number, decode_entities) or None)
        object.__setattr__(self, "identifier", normalize_url(self.identifier or self.url))


class Fetcher:
    name: str = "base"

    def fetch(self, url: str) -> str:
        raise NotImplementedError


class Extractor:
    name: str = "base"

    def extract(self, content: str, page_url: str) -> List[CandidateItem]:
        raise NotImplementedError
