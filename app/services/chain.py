from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Iterable, List, Optional, Sequence, TypeVar
import logging

from app.services.errors import ChainCorruptionError, NotFoundError


logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ChainLink:
    scene_id: int
    next_id: Optional[int]


class SceneChain(Generic[T]):
    """Упорядоченная цепочка вопросов одной истории.

    Хранится как "арена": плотный список сцен + индекс следующей сцены
    (`next_index[i]`: позиция следующей сцены в том же списке или None).
    Ссылки из БД превращаются в позиции один раз при построении, дальше
    все проверки идут проходами по массивам.

    Голова: единственная сцена, на которую никто не ссылается. Любое
    нарушение (ноль/несколько голов, цикл, висячая ссылка, недостижимые
    сцены) даёт ChainCorruptionError, "запасного" порядка нет.
    """

    def __init__(
        self,
        story_id: int,
        links: Sequence[ChainLink],
        payloads: Optional[Sequence[T]] = None,
    ):
        if payloads is not None and len(payloads) != len(links):
            raise ValueError("payloads must match links one-to-one")

        self.story_id = story_id
        self._links = list(links)
        self._payloads = list(payloads) if payloads is not None else None
        self._index = {}
        for pos, link in enumerate(self._links):
            if link.scene_id in self._index:
                self._corrupt(f"duplicate scene id {link.scene_id}")
            self._index[link.scene_id] = pos

        self._next_index: List[Optional[int]] = []
        for link in self._links:
            if link.next_id is None:
                self._next_index.append(None)
            elif link.next_id not in self._index:
                self._corrupt(
                    f"scene {link.scene_id} points to unknown scene {link.next_id}"
                )
            else:
                self._next_index.append(self._index[link.next_id])

        self._order: Optional[List[int]] = None

    @classmethod
    def from_scenes(cls, story_id: int, scenes: Iterable[T]) -> "SceneChain[T]":
        """Строим цепочку из ORM-сцен (нужны `id` и `next_question_scene_id`)."""
        scenes = list(scenes)
        links = [ChainLink(s.id, s.next_question_scene_id) for s in scenes]
        return cls(story_id, links, scenes)

    def __len__(self) -> int:
        return len(self._links)

    def __contains__(self, scene_id: object) -> bool:
        return scene_id in self._index

    def _corrupt(self, reason: str):
        logger.error(
            "Scene chain corrupted for story %s: %s. Chain: %s",
            self.story_id,
            reason,
            [(link.scene_id, link.next_id) for link in self._links],
        )
        raise ChainCorruptionError(f"Story {self.story_id}: {reason}")

    def _head_index(self) -> Optional[int]:
        if not self._links:
            return None

        incoming = [0] * len(self._links)
        for nxt in self._next_index:
            if nxt is not None:
                incoming[nxt] += 1

        converging = [self._links[i].scene_id for i, n in enumerate(incoming) if n > 1]
        if converging:
            self._corrupt(f"scenes referenced more than once: {converging}")

        heads = [i for i, n in enumerate(incoming) if n == 0]
        if len(heads) != 1:
            self._corrupt(
                f"expected exactly one head, found {[self._links[i].scene_id for i in heads]}"
            )
        return heads[0]

    def _walk(self) -> List[int]:
        if self._order is not None:
            return self._order

        order: List[int] = []
        pos = self._head_index()
        visited = [False] * len(self._links)
        while pos is not None:
            if visited[pos] or len(order) >= len(self._links):
                self._corrupt(f"cycle at scene {self._links[pos].scene_id}")
            visited[pos] = True
            order.append(pos)
            pos = self._next_index[pos]

        if len(order) != len(self._links):
            orphans = [self._links[i].scene_id for i, seen in enumerate(visited) if not seen]
            self._corrupt(f"scenes unreachable from head: {orphans}")

        self._order = order
        return order

    def head(self) -> Optional[int]:
        """id первой сцены или None для пустой цепочки."""
        order = self._walk()
        return self._links[order[0]].scene_id if order else None

    def next(self, scene_id: int) -> Optional[int]:
        """id следующей сцены или None, если это последняя."""
        self._walk()
        pos = self._index.get(scene_id)
        if pos is None:
            raise NotFoundError(f"Scene {scene_id} is not part of story {self.story_id}")
        nxt = self._next_index[pos]
        return self._links[nxt].scene_id if nxt is not None else None

    def position(self, scene_id: int) -> int:
        """Порядковый номер сцены в цепочке (с нуля)."""
        order = self._walk()
        pos = self._index.get(scene_id)
        if pos is None:
            raise NotFoundError(f"Scene {scene_id} is not part of story {self.story_id}")
        return order.index(pos)

    def to_ordered_list(self) -> List[int]:
        return [self._links[pos].scene_id for pos in self._walk()]

    def ordered_scenes(self) -> List[T]:
        if self._payloads is None:
            raise ValueError("Chain was built without scene payloads")
        return [self._payloads[pos] for pos in self._walk()]

    def get(self, scene_id: int) -> Optional[T]:
        if self._payloads is None:
            raise ValueError("Chain was built without scene payloads")
        pos = self._index.get(scene_id)
        return self._payloads[pos] if pos is not None else None


def link_in_order(scene_ids: Sequence[int]) -> List[ChainLink]:
    """Ссылки для списка в заданном порядке: i -> i+1, у последней None."""
    return [
        ChainLink(sid, scene_ids[i + 1] if i + 1 < len(scene_ids) else None)
        for i, sid in enumerate(scene_ids)
    ]
