# Block geometry
BLOCK_SIZE = 2048  # every persisted offset/size is a count of these

# Entry record: offset u32, size u32, name[24]
ENTRY_RECORD_SIZE = 32
NAME_FIELD_SIZE = 24
MAX_NAME_LENGTH = NAME_FIELD_SIZE - 1

# VER2 header: magic[4] + entry count u32
VER2_MAGIC = b"VER2"
VER2_HEADER_SIZE = 8

# Container generations
VER1 = 1  # .dir table + .img data, no embedded header
VER2 = 2  # single .img, header + table at the front

VERSION_NAMES = {VER1: "VER1", VER2: "VER2"}

# Open modes
MODE_READ_ONLY = 1
MODE_READ_WRITE = 2

# Empty header-bearing stream: one block reserved by default
DEFAULT_RESERVED_BLOCKS = 1

# Upper bound on blocks held in memory per copy step during pack
COPY_CHUNK_BLOCKS = 25_000

DIR_EXT = ".dir"
IMG_EXT = ".img"
