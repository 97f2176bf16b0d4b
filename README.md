# moonbow

moonbow models a small Cortex-M0+ microcontroller board in plain Python:
memory-mapped peripherals, a flash controller, firmware image loaders,
a minimal ARM semihosting handler and a compact bootloader that checks,
installs and boots firmware updates.

It uses only the standard library and needs Python 3.10 or newer.

## What is inside

| Module | Purpose |
| --- | --- |
| `moonbow.registers` | `Register` descriptors and the `RegisterBlock` mixin that maps word offsets to peripheral fields |
| `moonbow.peripherals` | The `Peripheral` base class, `Permissions`, `MmioMapping`, `DirectMapping` and `MmioError` |
| `moonbow.generic` | `Sram` and a page-erasable `FlashController` |
| `moonbow.cortex_m0` | The System Control Space (`SCS`) with its `vtor` register at offset `0xd08` |
| `moonbow.device` | `Device`: a `CpuModel` plus its peripherals, routing MMIO accesses by region base address |
| `moonbow.elf` | `load_segments()`: the `PT_LOAD` segments of a little-endian 32- or 64-bit ELF image |
| `moonbow.intelhex` | `segments()`: contiguous segments of an Intel HEX file |
| `moonbow.machine` | `Machine`: a register file and memory map, image loading, and `create_default_device()` |
| `moonbow.semihosting` | `dispatch()`: the `SYS_OPEN`, `SYS_WRITE` and `ANGEL_REPORT_EXCEPTION` calls |
| `moonbow.lz4` | An LZ4 block decoder that feeds a `Sink` |
| `moonbow.nanoloader` | The bootloader: `check_firmware`, `check_update`, `install_plain`, `process_update`, `boot` |
| `moonbow.testloader` | `TestHal`, a `NanoHal` that programs the flash controller of a `Machine` |

## The default board

`create_default_device()` returns a `Device` for `CpuModel.M0PLUS` with:

* 64 pages of 1 KiB flash at `0x0000_0000`, erased to `0xff`
* the flash controller's registers at `0x4000_0000`
  (`reg_status` at `+0x0`, `reg_addr` at `+0x4`, `reg_data` at `+0x8`,
  `reg_command` at `+0xc`)
* 4 KiB of SRAM at `0x2000_0000`
* the System Control Space at `0xe000_e000`, added by `Device` itself

Writing `FlashController.CMD_ERASE` (`0x4c6f315f`) to the command register
erases the page holding `reg_addr`; writing `FlashController.CMD_PROGRAM`
(`0x860cd758`) ANDs `reg_data` into the word at `reg_addr`, so programming
can only clear bits. Writes to the status register are ignored and the
command register always reads as zero.

Register accesses through `read_registers` / `write_registers` must be
32-bit and word-aligned, otherwise `RegisterError("Unaligned access")` is
raised. An offset with no register behind it raises `RegisterError` naming
the address and the peripheral. When such an access comes from a `Machine`,
the error is logged instead; a failed read then yields zero.

## Loading images

```python
from moonbow.machine import LogWriter, Machine, create_default_device

machine = Machine(create_default_device(), LogWriter())

with open("firmware.elf", "rb") as f:
    machine.load_elf(f.read())

with open("extra.hex", "rb") as f:
    machine.load_ihex(f.read())

machine.reset()                 # SP and PC from the vector table at 0
print(hex(machine.read_pc()))
```

`load_segment` writes into any mapped region regardless of its
permissions; writes that fall into an MMIO region are passed to the
peripheral word by word. Touching unmapped memory raises `MachineError`.

Intel HEX files can also be split into segments on their own:

```python
from moonbow.intelhex import segments

with open("extra.hex", "rb") as f:
    for segment in segments(f.read()):
        print(hex(segment.address), len(segment.data))
```

Malformed records raise `IntelHexError`, and so does a file with no
end-of-file record. `load_segments()` in `moonbow.elf` raises `ElfError`
for anything it cannot read, including an image with no program headers.

## Semihosting

`moonbow.semihosting.dispatch(machine)` serves the call selected by `R0`
using the parameter block at `R1`: opening `":tt"` returns a console
handle, writes to it go to the machine's `LogWriter` (logged line by line),
and an application exit report stops the machine, recording an error for
`ADP_STOPPED_RUNTIME_ERROR_UNKNOWN`. It then steps PC past the trapping
instruction. Other calls raise `SemihostingError`.

## LZ4

`decompress()` walks an LZ4 block and hands literals and back references
to a sink, so output can go to a buffer, to flash or anywhere else:

```python
from moonbow.lz4 import BufferSink, decompress

sink = BufferSink()
decompress(compressed_block, sink)
print(sink.data)
```

`BufferSink(dictionary)` also accepts a preset dictionary for back
references that reach before the start of the output. Truncated or
inconsistent input raises `Lz4Error`. Subclass `Sink` and implement
`literal()` and `backref()` to send output elsewhere.

## The bootloader

`moonbow.nanoloader` works against any `NanoHal`. `boot(hal)`:

1. asks the HAL for a pending update and verifies its checksum;
2. installs a plain update when its size matches and the new firmware,
   rounded up to whole pages, fits below the update itself;
3. clears the update only once a valid firmware is in flash, so an
   interrupted install can be retried;
4. checks the firmware size word and checksum, calling `hal.abort()` with a
   `NanoReason` and raising `NanoError` if they are wrong;
5. returns the address of the firmware's vector table.

`TestHal` from `moonbow.testloader` runs this against a `Machine`. It uses
CRC-32 as the checksum, looks for a pending update in a 256-word options
table at an address you give it, and programs flash through the flash
controller's registers one word at a time.

## What moonbow does not do

moonbow does not execute instructions. A `Machine` holds registers and a
memory map and can load images and read its reset vectors, but nothing
decodes or runs the firmware; semihosting calls and the bootloader are
driven by calling them from Python. There is no command-line program.

## Running the tests

Install the package with its `test` extra and run `pytest`.