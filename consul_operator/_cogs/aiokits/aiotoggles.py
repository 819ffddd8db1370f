import asyncio
from typing import Optional


class Toggle:
    """
    A two-way flag: it can be awaited both until turned on and until turned off.

    An `asyncio.Event` can only be awaited until it is set. The informer needs
    a state that can go both ways: e.g. "the cache is synced" goes on after
    the listing is applied, and the startup waits for it.
    """

    def __init__(self, state: bool = False, *, name: Optional[str] = None) -> None:
        super().__init__()
        self._name = name
        self._on = asyncio.Event()
        self._off = asyncio.Event()
        (self._on if state else self._off).set()

    def __repr__(self) -> str:
        state = 'on' if self.is_on() else 'off'
        prefix = f'{self._name}: ' if self._name is not None else ''
        return f'<{self.__class__.__name__}: {prefix}{state}>'

    def __bool__(self) -> bool:
        raise NotImplementedError("Use is_on()/is_off() explicitly.")

    @property
    def name(self) -> Optional[str]:
        return self._name

    def is_on(self) -> bool:
        return self._on.is_set()

    def is_off(self) -> bool:
        return self._off.is_set()

    async def turn_to(self, state: bool) -> None:
        """ Turn the toggle on or off, and wake up whoever waits for that. """
        if state:
            self._off.clear()
            self._on.set()
        else:
            self._on.clear()
            self._off.set()

    async def wait_for(self, state: bool) -> None:
        """ Wait until the toggle is on or off as requested (return at once if it is). """
        await (self._on if state else self._off).wait()
