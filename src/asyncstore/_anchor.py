"""Data anchor — plain Python structures that hold all container state.

Every container is a thin handle holding an _id. The id doubles as the
identity token used to deduplicate reloads across a dependency graph.
"""

import itertools

# Container state
values: dict[int, object] = {}
subscribers: dict[int, list] = {}  # container_id -> list of callbacks

# ID generation: itertools.count is atomic under the GIL
_id_counter = itertools.count(1)


def new_id() -> int:
    return next(_id_counter)
