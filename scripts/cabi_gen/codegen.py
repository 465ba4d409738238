"""
Code generation utilities

Provides the indented line emitter used by the renderers and helpers for
inspecting C++ type spellings as they come out of the compiler front end.
"""

import re


class CodeGen:
    """Code generation helper with indentation support"""

    def __init__(self, indent_str: str = '    '):
        self._lines: list[str] = []
        self._indent: int = 0
        self._indent_str: str = indent_str

    def line(self, text: str = ''):
        """Add a line with current indentation"""
        if text:
            self._lines.append(self._indent_str * self._indent + text)
        else:
            self._lines.append('')

    def lines(self, *texts: str):
        """Add multiple lines"""
        for text in texts:
            self.line(text)

    def indent(self):
        self._indent += 1

    def dedent(self):
        if self._indent > 0:
            self._indent -= 1

    def block(self, header: str, footer: str = '}'):
        """Context manager for code blocks"""
        return _BlockContext(self, header, footer)

    def output(self) -> str:
        """Get generated code as string (always newline terminated)"""
        return '\n'.join(self._lines) + '\n'


class _BlockContext:
    """Context manager for indented code blocks"""

    def __init__(self, gen: CodeGen, header: str, footer: str):
        self._gen = gen
        self._header = header
        self._footer = footer

    def __enter__(self):
        self._gen.line(self._header)
        self._gen.indent()
        return self

    def __exit__(self, *args):
        self._gen.dedent()
        self._gen.line(self._footer)


# C++ spelling -> (C spelling, size, align)
INT_TYPES = {
    'char': ('char', 1, 1),
    'signed char': ('signed char', 1, 1),
    'unsigned char': ('unsigned char', 1, 1),
    'short': ('short', 2, 2),
    'unsigned short': ('unsigned short', 2, 2),
    'int': ('int', 4, 4),
    'unsigned int': ('unsigned int', 4, 4),
    'unsigned': ('unsigned int', 4, 4),
    'long': ('long', 8, 8),
    'unsigned long': ('unsigned long', 8, 8),
    'long long': ('long long', 8, 8),
    'unsigned long long': ('unsigned long long', 8, 8),
    'int8_t': ('int8_t', 1, 1),
    'uint8_t': ('uint8_t', 1, 1),
    'int16_t': ('int16_t', 2, 2),
    'uint16_t': ('uint16_t', 2, 2),
    'int32_t': ('int32_t', 4, 4),
    'uint32_t': ('uint32_t', 4, 4),
    'int64_t': ('int64_t', 8, 8),
    'uint64_t': ('uint64_t', 8, 8),
    'size_t': ('size_t', 8, 8),
    'ptrdiff_t': ('ptrdiff_t', 8, 8),
    'intptr_t': ('intptr_t', 8, 8),
    'uintptr_t': ('uintptr_t', 8, 8),
}

FLOAT_TYPES = {
    'float': ('float', 4, 4),
    'double': ('double', 8, 8),
}

BOOL_TYPES = {
    'bool': ('bool', 1, 1),
}

POINTER_LAYOUT = (8, 8)

STRING_TYPES = {
    'std::string',
    'std::basic_string<char>',
    'std::__cxx11::basic_string<char>',
    'std::__1::basic_string<char>',
}

VECTOR_TEMPLATES = {
    'std::vector',
    'std::__1::vector',
}


def strip_std_prefix(type_str: str) -> str:
    """Drop a leading std:: from fixed-width integer spellings

    Examples:
        std::int32_t -> int32_t
        std::size_t -> size_t
    """
    if type_str.startswith('std::') and type_str[5:] in INT_TYPES:
        return type_str[5:]
    return type_str


def normalize_type(type_str: str) -> str:
    """Normalize whitespace and elaborated type keywords"""
    text = re.sub(r'\b(?:struct|class|enum|union)\s+', '', type_str)
    text = re.sub(r'\s+', ' ', text).strip()
    text = re.sub(r'\s*<\s*', '<', text)
    text = re.sub(r'\s*>', '>', text)
    text = re.sub(r'\s*,\s*', ', ', text)
    return strip_std_prefix(text)


def is_int_type(type_str: str) -> bool:
    return strip_std_prefix(type_str) in INT_TYPES


def is_float_type(type_str: str) -> bool:
    return type_str in FLOAT_TYPES


def is_bool_type(type_str: str) -> bool:
    return type_str in BOOL_TYPES


def is_prim_type(type_str: str) -> bool:
    """Check if type is a primitive arithmetic type"""
    return is_bool_type(type_str) or is_int_type(type_str) or is_float_type(type_str)


def is_signed_int(type_str: str) -> bool:
    name = strip_std_prefix(type_str)
    return is_int_type(name) and not (name.startswith('unsigned') or name.startswith('uint')
                                      or name == 'size_t')


def prim_c_type(type_str: str) -> str:
    """C spelling of a primitive type"""
    name = strip_std_prefix(type_str)
    for table in (INT_TYPES, FLOAT_TYPES, BOOL_TYPES):
        if name in table:
            return table[name][0]
    raise KeyError(type_str)


def prim_layout(type_str: str) -> tuple[int, int]:
    """(size, align) of a primitive type"""
    name = strip_std_prefix(type_str)
    for table in (INT_TYPES, FLOAT_TYPES, BOOL_TYPES):
        if name in table:
            _, size, align = table[name]
            return size, align
    raise KeyError(type_str)


def is_string_type(type_str: str) -> bool:
    """Check if type is a dynamic text buffer"""
    return type_str in STRING_TYPES


def is_template_type(type_str: str) -> bool:
    return '<' in type_str and type_str.endswith('>')


def split_template(type_str: str) -> tuple[str, list[str]]:
    """Split a template instantiation into name and arguments

    Example: "std::map<int, std::vector<float>>" -> ("std::map", ["int", "std::vector<float>"])
    """
    if not is_template_type(type_str):
        return type_str, []
    name = type_str[:type_str.index('<')].strip()
    body = type_str[type_str.index('<') + 1:-1]
    args: list[str] = []
    depth = 0
    token = ''
    for ch in body:
        if ch == ',' and depth == 0:
            args.append(token.strip())
            token = ''
            continue
        if ch in '<([':
            depth += 1
        elif ch in '>)]':
            depth -= 1
        token += ch
    if token.strip():
        args.append(token.strip())
    return name, args


def is_vector_type(type_str: str) -> bool:
    """Check if type is a dynamic array"""
    name, args = split_template(type_str)
    return name in VECTOR_TEMPLATES and len(args) >= 1


def vector_element(type_str: str) -> str:
    """Element type of a dynamic array (allocator argument ignored)"""
    _, args = split_template(type_str)
    return normalize_type(args[0])


def is_array_type(type_str: str) -> bool:
    return re.search(r'\[\d+\]$', type_str) is not None


def extract_array_type(type_str: str) -> str:
    """Extract base type from array type"""
    return type_str[:type_str.index('[')].strip()


def extract_array_sizes(type_str: str) -> list[int]:
    """Extract array dimensions"""
    return [int(m) for m in re.findall(r'\[(\d+)\]', type_str)]


def type_tag(type_str: str) -> str:
    """Short identifier fragment for a type, used in overload suffixes

    Examples:
        float -> float
        unsigned int -> unsigned_int
        geom::Vec2 -> Vec2
        const char * -> char_ptr
    """
    text = normalize_type(type_str.replace('&', ''))
    text = re.sub(r'^const\s+|\s+const$', '', text)
    pointers = text.count('*')
    text = text.replace('*', '').strip()
    if is_string_type(text):
        text = 'string'
    elif is_vector_type(text):
        text = 'vector_' + type_tag(vector_element(text))
    text = text.split('::')[-1]
    text = re.sub(r'\W+', '_', text).strip('_')
    return text + '_ptr' * pointers


def align_to(offset: int, align: int) -> int:
    return (offset + align - 1) // align * align


def struct_layout(members: list[tuple[int, int]]) -> tuple[int, int]:
    """C struct layout over (size, align) members -> (size, align)

    An empty member list gives the one byte C++ assigns to empty classes.
    """
    if not members:
        return 1, 1
    offset = 0
    max_align = 1
    for size, align in members:
        offset = align_to(offset, align) + size
        max_align = max(max_align, align)
    return align_to(offset, max_align), max_align


def c_identifier(name: str) -> str:
    """Turn an arbitrary fragment into a valid C identifier"""
    text = re.sub(r'\W+', '_', name).strip('_')
    if not text or text[0].isdigit():
        text = '_' + text
    return text
