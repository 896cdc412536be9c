"""
Events Task - Chain events matching a name.
"""

from typing import Any, AsyncIterator, List, Union

from pydantic import field_validator

from guardian.chain.api import SubstrateApi
from guardian.models import Event
from guardian.tasks.base import Task, TaskArguments
from guardian.tasks.helpers import as_list, validate_name_selector


class EventsArguments(TaskArguments):
    name: Union[str, List[str]]

    @field_validator("name", mode="before")
    @classmethod
    def check_name(cls, value: Any) -> Any:
        return validate_name_selector(value)


class EventsTask(Task[EventsArguments, Event]):
    """
    Emits every event whose 'section.method' name matches.

    Arguments:
        name: event name (e.g. 'balances.Deposit') or list of names
    """

    arguments_model = EventsArguments

    async def start(self, context: SubstrateApi) -> AsyncIterator[Event]:
        names = set(as_list(self.arguments.name))

        async for events in context.events():
            for event in events:
                if event.name in names:
                    yield Event(name=event.name, args=event.args, block_hash=event.block_hash)
