"""Declarative 32-bit register blocks for memory-mapped peripherals."""

from __future__ import annotations

from typing import Any, ClassVar, Dict, Optional, Tuple

from .peripherals import MmioError

WORD_SIZE = 4
_U32_MASK = 0xFFFF_FFFF


class RegisterError(MmioError):
    """Raised when a register access cannot be served."""


class Register:
    """A 32-bit register inside a :class:`RegisterBlock`.

    A stored register keeps its value on the instance. A register declared
    with ``stored=False`` has no storage: reads go to ``get_<name>()`` and
    writes to ``set_<name>(value)`` on the owning block, unless ``read_const``
    or ``write_nop`` covers that direction.
    """

    def __init__(
        self,
        offset: Optional[int] = None,
        *,
        reset: int = 0,
        read_const: Optional[int] = None,
        write_nop: bool = False,
        stored: bool = True,
    ) -> None:
        if offset is not None and (offset < 0 or offset % WORD_SIZE):
            raise ValueError("Offset must be on word boundary")
        for value in (reset, read_const):
            if value is not None and not 0 <= value <= _U32_MASK:
                raise ValueError(f"Register value 0x{value:x} does not fit in 32 bits")
        self.requested_offset = offset
        self.offset = offset if offset is not None else 0
        self.reset = reset
        self.read_const = read_const
        self.write_nop = write_nop
        self.stored = stored
        self.name = ""

    def __repr__(self) -> str:
        return f"Register({self.name!r}, offset=0x{self.offset:x})"

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, instance: Any, owner: Optional[type] = None) -> Any:
        if instance is None:
            return self
        if self.stored:
            return instance.__dict__.get(self.name, self.reset)
        return self.read(instance)

    def __set__(self, instance: Any, value: int) -> None:
        if self.stored:
            instance.__dict__[self.name] = value & _U32_MASK
            return
        setter = getattr(instance, f"set_{self.name}", None)
        if setter is None:
            raise AttributeError(f"register {self.name} has no storage and no setter")
        setter(value & _U32_MASK)

    def read(self, instance: Any) -> int:
        """Read the register as the bus sees it."""
        if self.read_const is not None:
            return self.read_const
        if self.stored:
            return instance.__dict__.get(self.name, self.reset)
        return getattr(instance, f"get_{self.name}")()

    def write(self, instance: Any, value: int) -> None:
        """Write the register as the bus sees it."""
        value &= _U32_MASK
        if self.write_nop:
            return
        if self.stored:
            instance.__dict__[self.name] = value
        else:
            getattr(instance, f"set_{self.name}")(value)

    def reset_value(self, instance: Any) -> None:
        if self.stored:
            instance.__dict__[self.name] = self.reset

    def _check_accessors(self, owner: type) -> None:
        if self.stored:
            return
        if self.read_const is None and not callable(getattr(owner, f"get_{self.name}", None)):
            raise TypeError(f"register {self.name} needs get_{self.name}() or read_const")
        if not self.write_nop and not callable(getattr(owner, f"set_{self.name}", None)):
            raise TypeError(f"register {self.name} needs set_{self.name}() or write_nop")


class RegisterBlock:
    """Mixin giving a class word-addressed access to its :class:`Register` fields.

    Registers are laid out in definition order, each one word after the
    previous unless it names an explicit offset.
    """

    _registers: ClassVar[Tuple[Register, ...]] = ()
    _register_index: ClassVar[Dict[int, Register]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        registers = list(cls._registers)
        next_offset = registers[-1].offset + WORD_SIZE if registers else 0
        for attr in vars(cls).values():
            if not isinstance(attr, Register):
                continue
            if attr.requested_offset is not None:
                next_offset = attr.requested_offset
            attr.offset = next_offset
            next_offset += WORD_SIZE
            attr._check_accessors(cls)
            registers.append(attr)
        cls._registers = tuple(registers)
        index: Dict[int, Register] = {}
        for register in registers:
            index.setdefault(register.offset >> 2, register)
        cls._register_index = index

    def _unmapped(self, base: int, offset: int) -> RegisterError:
        name = getattr(self, "name", type(self).__name__)
        return RegisterError(
            f"No register mapped at 0x{base + offset:08x} ({name}+0x{offset:x})"
        )

    def read_register(self, base: int, offset: int) -> int:
        """Read the register whose word contains ``offset``."""
        register = self._register_index.get(offset >> 2)
        if register is None:
            raise self._unmapped(base, offset)
        return register.read(self)

    def write_register(self, base: int, offset: int, value: int) -> None:
        """Write the register whose word contains ``offset``."""
        register = self._register_index.get(offset >> 2)
        if register is None:
            raise self._unmapped(base, offset)
        register.write(self, value)

    def reset_registers(self) -> None:
        """Restore every stored register to its reset value."""
        for register in self._registers:
            register.reset_value(self)

    def read_registers(self, base: int, offset: int, size: int) -> int:
        """Read a register, accepting only aligned word accesses."""
        value = self.read_register(base, offset)
        if size != WORD_SIZE or offset & 3:
            raise RegisterError("Unaligned access")
        return value

    def write_registers(self, base: int, offset: int, size: int, value: int) -> None:
        """Write a register, accepting only aligned word accesses."""
        if size != WORD_SIZE or offset & 3:
            raise RegisterError("Unaligned access")
        self.write_register(base, offset, value)