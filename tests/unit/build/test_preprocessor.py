"""
Unit tests for sketch preprocessing.
"""

import os

from sketchbuild.build.preprocessor import (
    ARDUINO_INCLUDE,
    find_function_definitions,
    insert_prototypes,
    main_cpp_path,
    merge_sketch_sources,
    preprocess_sketch,
    write_if_changed,
)


class TestMergeSketchSources:
    """Test .ino concatenation."""

    def test_merge(self, sketch):
        """Test files are merged with #line directives, main file first."""
        merged = merge_sketch_sources(sketch)
        lines = merged.split("\n")

        assert lines[0] == ARDUINO_INCLUDE
        assert lines[1] == f'#line 1 "{sketch.main_file}"'
        assert lines[2] == "// Blink"
        assert f'#line 1 "{sketch.other_sketch_files[0]}"' in lines
        assert merged.index("void setup()") < merged.index("void blinkOnce(int ms)")

    def test_main_cpp_path(self, sketch, tmp_path):
        """Test the output file is named after the main file."""
        assert main_cpp_path(sketch, tmp_path) == tmp_path / "Blink.ino.cpp"


class TestFindFunctionDefinitions:
    """Test file-scope function detection."""

    def test_simple_definitions(self):
        """Test definitions with the brace on the same or the next line."""
        source = "int led = 13;\nvoid setup() {\n  pinMode(led, OUTPUT);\n}\nint add(int a, int b)\n{\n  return a + b;\n}\n"

        assert find_function_definitions(source) == [
            (1, "void setup();"),
            (4, "int add(int a, int b);"),
        ]

    def test_qualified_return_types(self):
        """Test multi-word and pointer return types are kept."""
        source = "static unsigned long elapsed(void) {\n  return 0;\n}\nconst char* label(int i) {\n  return 0;\n}\n"

        prototypes = [p for _, p in find_function_definitions(source)]

        assert prototypes == ["static unsigned long elapsed(void);", "const char* label(int i);"]

    def test_ignores_nested_blocks_and_statements(self):
        """Test control statements and code inside bodies are not definitions."""
        source = (
            "void loop() {\n"
            "  if (ready()) {\n"
            "    while (busy()) {\n"
            "    }\n"
            "  }\n"
            "}\n"
            "int value = compute(3);\n"
        )

        assert find_function_definitions(source) == [(0, "void loop();")]

    def test_ignores_comments_and_strings(self):
        """Test braces and definitions inside comments or strings are ignored."""
        source = (
            "/* void commented() {\n}\n*/\n"
            'const char* text = "{ not a block";\n'
            "// void alsoCommented() {\n"
            "void real() {\n"
            "}\n"
        )

        assert [p for _, p in find_function_definitions(source)] == ["void real();"]

    def test_declarations_are_not_definitions(self):
        """Test a prototype followed by another line is not a definition."""
        source = "void later();\nint x;\n"

        assert find_function_definitions(source) == []


class TestInsertPrototypes:
    """Test prototype insertion."""

    def test_inserts_before_first_definition(self, sketch):
        """Test prototypes of all .ino files land before the first function."""
        source = insert_prototypes(merge_sketch_sources(sketch))
        lines = source.split("\n")

        line_directive = f'#line 4 "{sketch.main_file}"'
        first = lines.index(line_directive)
        assert lines[first + 1:first + 4] == ["void setup();", "void loop();", "void blinkOnce(int ms);"]
        assert lines[first + 4] == line_directive
        assert lines[first + 5] == "void setup() {"
        assert lines.index("int led = 13;") < first

    def test_existing_prototype_not_duplicated(self):
        """Test functions already declared get no second prototype."""
        source = '#line 1 "a.ino"\nvoid helper();\nvoid setup() {\n  helper();\n}\nvoid helper() {\n}\n'

        result = insert_prototypes(source)

        assert result.count("void helper();") == 1
        assert "void setup();" in result

    def test_no_functions(self):
        """Test sources without functions are unchanged."""
        source = "int x = 1;\n"

        assert insert_prototypes(source) == source


class TestPreprocessSketch:
    """Test writing the preprocessed translation unit."""

    def test_preprocess_writes_output(self, sketch, tmp_path):
        """Test the generated file contains the merged sketch and prototypes."""
        output = preprocess_sketch(sketch, tmp_path / "sketch")

        assert output == tmp_path / "sketch" / "Blink.ino.cpp"
        content = output.read_text()
        assert content.startswith(ARDUINO_INCLUDE)
        assert "void blinkOnce(int ms);" in content
        assert "digitalWrite(led, HIGH);" in content

    def test_preprocess_keeps_current_output(self, sketch, tmp_path):
        """Test an up-to-date output file is not rewritten."""
        output = preprocess_sketch(sketch, tmp_path / "sketch")
        os.utime(output, (1000, 1000))

        preprocess_sketch(sketch, tmp_path / "sketch")

        assert output.stat().st_mtime == 1000


class TestWriteIfChanged:
    """Test conditional writes of generated files."""

    def test_writes_new_file(self, tmp_path):
        path = tmp_path / "out" / "Blink.ino.cpp"

        assert write_if_changed(path, "int x;\n") is True
        assert path.read_text() == "int x;\n"

    def test_skips_identical_content(self, tmp_path):
        path = tmp_path / "Blink.ino.cpp"
        path.write_text("int x;\n")

        assert write_if_changed(path, "int x;\n") is False

    def test_rewrites_changed_content(self, tmp_path):
        path = tmp_path / "Blink.ino.cpp"
        path.write_text("int x;\n")

        assert write_if_changed(path, "int y;\n") is True
        assert path.read_text() == "int y;\n"
