"""Pass-through byte windows owned by collaborators outside the core."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class RegisterBank:
    """Contiguous block of bytes the core routes to but never interprets.

    Video RAM, OAM and the video/audio register windows are backed by these
    banks so rendering and audio collaborators can read what the CPU wrote.
    """

    name: str
    start: int
    size: int
    fill: int = 0x00
    data: bytearray = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.data = bytearray([self.fill & 0xFF]) * self.size

    @property
    def end(self) -> int:
        return self.start + self.size - 1

    def contains(self, address: int) -> bool:
        return self.start <= address <= self.end

    def read(self, address: int) -> int:
        return self.data[address - self.start]

    def write(self, address: int, value: int) -> None:
        self.data[address - self.start] = value & 0xFF

    def reset(self) -> None:
        self.data[:] = bytes([self.fill & 0xFF]) * self.size

    def snapshot(self) -> bytes:
        return bytes(self.data)

    def restore(self, payload: bytes) -> None:
        if len(payload) != self.size:
            raise ValueError(
                f"{self.name} size mismatch (expected {self.size}, got {len(payload)})"
            )
        self.data[:] = payload


__all__ = ["RegisterBank"]
