import logging
from typing import Callable, List, NamedTuple

from kbquery.config import Settings
from kbquery.errors import InvalidUserChoice
from kbquery.schema import delete_index_if_exists

logger = logging.getLogger(__name__)

DELETE_INDEX = 1
RUN_QUERIES = 2


class ExampleQuery(NamedTuple):
    title: str
    text: str
    options: dict


EXAMPLE_QUERIES = [
    ExampleQuery(
        "Query 1: Search for term 'New York', returning the full document",
        "New York",
        {"search_mode": "all", "query_type": "full"},
    ),
    ExampleQuery(
        "Query 2: Search for the terms 'London' and 'Buckingham Palace'",
        "London, Buckingham Palace",
        {},
    ),
]


def parse_choice(text: str) -> int:
    try:
        choice = int(text.strip())
    except (AttributeError, ValueError):
        raise InvalidUserChoice(text) from None
    if choice not in (DELETE_INDEX, RUN_QUERIES):
        raise InvalidUserChoice(text)
    return choice


def write_documents(results, out: Callable = print) -> int:
    documents = list(results)
    count = results.get_count()
    if count is None:
        count = len(documents)
    out(f"There are {count} documents in the results")
    for document in documents:
        out(document.get("file_name"))
    out("")
    return count


def run_queries(
    search_client, queries: List[ExampleQuery] = EXAMPLE_QUERIES, out=print
) -> List[int]:
    counts = []
    for query in queries:
        out(query.title)
        results = search_client.search(
            query.text, include_total_count=True, **query.options
        )
        counts.append(write_documents(results, out))
    return counts


def prompt_and_dispatch(service, settings: Settings, read=input, out=print):
    """Ask once whether to delete the existing index or query it."""
    answer = read(
        "The index already exists.  Enter 1 to delete the index.  "
        "Enter 2 to query the existing index\n"
    )
    try:
        choice = parse_choice(answer)
    except InvalidUserChoice as e:
        logger.debug("%s", e)
        out("Invalid Choice.  Exiting app")
        return None

    if choice == DELETE_INDEX:
        delete_index_if_exists(service, settings.index_name)
        out("Index deleted.  Exiting app")
    else:
        out("Searching index...\n")
        run_queries(service.search_client(settings.index_name), out=out)
    return choice
