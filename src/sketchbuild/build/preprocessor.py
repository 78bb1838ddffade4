"""
Sketch preprocessing.

Turns the .ino files of a sketch into a single C++ translation unit:

1. Concatenate the main file and the other .ino files (alphabetically),
   each preceded by a ``#line`` directive so compiler diagnostics point
   back at the original file and line
2. Add ``#include <Arduino.h>`` at the top
3. Generate prototypes for the functions defined at file scope and insert
   them before the first function definition

The result is written to ``<sketch build path>/<main file name>.cpp``,
e.g. ``sketch/Blink.ino.cpp``.
"""

import re
from pathlib import Path
from typing import List, Optional, Tuple

from .sketch import Sketch

ARDUINO_INCLUDE = "#include <Arduino.h>"

# return_type name(params) { ... matched on a comment/string-free line
_FUNCTION_DEF = re.compile(
    r"^([a-zA-Z_][\w\s\*&:<>,]*?[\w\*&>])\s*(?<![\w:])([a-zA-Z_]\w*)\s*\(([^()]*)\)\s*(?:const\s*)?(\{|$)"
)
_LINE_DIRECTIVE = re.compile(r'^#line\s+(\d+)\s+"(.*)"\s*$')
_KEYWORDS = {"if", "else", "while", "for", "switch", "return", "do", "case", "sizeof", "new", "delete"}


class PreprocessorError(Exception):
    """Raised when a sketch can't be preprocessed."""

    pass


def main_cpp_path(sketch: Sketch, sketch_build_path: Path) -> Path:
    return Path(sketch_build_path) / f"{sketch.main_file.name}.cpp"


def _quote(path: Path) -> str:
    return str(path).replace("\\", "\\\\").replace('"', '\\"')


def merge_sketch_sources(sketch: Sketch) -> str:
    """
    Concatenate the .ino files of a sketch into one source.

    Raises:
        PreprocessorError: If a sketch file can't be read
    """
    parts = [ARDUINO_INCLUDE]
    for ino_file in [sketch.main_file] + list(sketch.other_sketch_files):
        try:
            content = ino_file.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise PreprocessorError(f"Failed to read {ino_file}: {e}") from e
        parts.append(f'#line 1 "{_quote(ino_file)}"')
        parts.append(content if content.endswith("\n") else content + "\n")
    return "\n".join(parts)


def _blank_comments_and_strings(source: str) -> str:
    """Replace comments and string/char literals with spaces, keeping newlines."""
    out = []
    i = 0
    n = len(source)
    while i < n:
        c = source[i]
        nxt = source[i + 1] if i + 1 < n else ""
        if c == "/" and nxt == "/":
            while i < n and source[i] != "\n":
                out.append(" ")
                i += 1
        elif c == "/" and nxt == "*":
            end = source.find("*/", i + 2)
            end = n if end == -1 else end + 2
            out.extend("\n" if ch == "\n" else " " for ch in source[i:end])
            i = end
        elif c in "\"'":
            out.append(" ")
            i += 1
            while i < n and source[i] != c and source[i] != "\n":
                if source[i] == "\\" and i + 1 < n:
                    out.append(" ")
                    i += 1
                out.append(" ")
                i += 1
            if i < n and source[i] == c:
                out.append(" ")
                i += 1
        else:
            out.append(c)
            i += 1
    return "".join(out)


def find_function_definitions(source: str) -> List[Tuple[int, str]]:
    """
    Find the functions defined at file scope.

    Args:
        source: C++ source

    Returns:
        (line index, prototype) pairs in source order
    """
    lines = _blank_comments_and_strings(source).split("\n")
    found = []
    depth = 0
    paren_depth = 0
    for index, line in enumerate(lines):
        stripped = line.strip()
        if depth == 0 and paren_depth == 0 and stripped and not stripped.startswith("#"):
            match = _FUNCTION_DEF.match(stripped)
            if match and _opens_body(match, lines, index):
                return_type = " ".join(match.group(1).split())
                name = match.group(2)
                params = " ".join(match.group(3).split())
                if name not in _KEYWORDS and return_type.split()[-1] not in _KEYWORDS:
                    found.append((index, f"{return_type} {name}({params});"))
        depth += line.count("{") - line.count("}")
        paren_depth += line.count("(") - line.count(")")
        depth = max(depth, 0)
        paren_depth = max(paren_depth, 0)
    return found


def _opens_body(match, lines: List[str], index: int) -> bool:
    if match.group(4) == "{":
        return True
    for following in lines[index + 1:]:
        if following.strip():
            return following.strip().startswith("{")
    return False


def _declared_prototypes(source: str) -> set:
    declared = set()
    for line in _blank_comments_and_strings(source).split("\n"):
        stripped = " ".join(line.strip().split())
        if stripped.endswith(");") and "(" in stripped:
            declared.add(stripped)
    return declared


def _origin_of_line(lines: List[str], index: int) -> Optional[Tuple[int, str]]:
    """Map a merged-source line index back to its (line number, file)."""
    for j in range(index - 1, -1, -1):
        match = _LINE_DIRECTIVE.match(lines[j])
        if match:
            return int(match.group(1)) + (index - j - 1), match.group(2)
    return None


def insert_prototypes(source: str) -> str:
    """Insert prototypes for every file-scope function before the first one."""
    definitions = find_function_definitions(source)
    if not definitions:
        return source

    declared = _declared_prototypes(source)
    prototypes = []
    for _, prototype in definitions:
        if prototype not in declared and prototype not in prototypes:
            prototypes.append(prototype)
    if not prototypes:
        return source

    lines = source.split("\n")
    first_index = definitions[0][0]
    block = []
    origin = _origin_of_line(lines, first_index)
    if origin is not None:
        block.append(f'#line {origin[0]} "{origin[1]}"')
    block.extend(prototypes)
    if origin is not None:
        block.append(f'#line {origin[0]} "{origin[1]}"')

    return "\n".join(lines[:first_index] + block + lines[first_index:])


def generate_main_cpp(sketch: Sketch) -> str:
    """Return the main translation unit: merged .ino files plus prototypes."""
    return insert_prototypes(merge_sketch_sources(sketch))


def write_if_changed(path: Path, content: str) -> bool:
    """
    Write ``content`` unless the file already holds it.

    Returns:
        True if the file was written
    """
    if path.is_file() and path.read_text(encoding="utf-8", errors="replace") == content:
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return True


def preprocess_sketch(sketch: Sketch, sketch_build_path: Path) -> Path:
    """
    Write the preprocessed main translation unit of a sketch.

    The file is left untouched when its content is current, so its
    object stays up to date.

    Args:
        sketch: Sketch to preprocess
        sketch_build_path: Directory receiving the generated .cpp

    Returns:
        Path to the generated ``<main>.cpp``

    Raises:
        PreprocessorError: If a sketch file can't be read or the output written
    """
    source = generate_main_cpp(sketch)
    output_file = main_cpp_path(sketch, sketch_build_path)
    try:
        write_if_changed(output_file, source)
    except OSError as e:
        raise PreprocessorError(f"Failed to write {output_file}: {e}") from e
    return output_file
