"""Tests for the BSL module parser."""

import pytest

from conftest import ORDER_OBJECT_MODULE, UTILS_MODULE
from xref_cli.bsl_parser import BslModuleParser, LineIndex, mask_source, method_ordinal


@pytest.fixture
def parser() -> BslModuleParser:
    return BslModuleParser()


def test_mask_source_keeps_offsets():
    """Comments and literal contents are blanked without moving anything."""
    text = 'A = "x // y"; // note\nB = \'20240101\';'
    code, bare = mask_source(text)

    assert len(code) == len(bare) == len(text)
    assert "note" not in code
    assert '"x // y"' in code
    assert "x // y" not in bare
    assert bare.count('"') == 2
    assert "20240101" not in bare
    assert code.index("\n") == text.index("\n")


def test_mask_source_escaped_quotes_and_multiline():
    text = 'S = "say ""hi""\n|second line";\nCall();'
    _, bare = mask_source(text)
    assert "hi" not in bare
    assert "second" not in bare
    assert "Call();" in bare


def test_line_index():
    index = LineIndex("a\nbb\n\nc")
    assert index.line_of(0) == 1
    assert index.line_of(2) == 2
    assert index.line_of(5) == 3
    assert index.line_of(6) == 4
    assert index.line_count == 4
    with pytest.raises(ValueError):
        index.line_of(100)


def test_parse_methods(parser: BslModuleParser):
    """Headers, parameters, export flag, pragmas and regions."""
    module = parser.parse(UTILS_MODULE, "CommonModules/Utils/Module.bsl")

    assert [m.name for m in module.methods] == ["CalcSum", "Log"]
    calc, log = module.methods
    assert calc.is_function and calc.is_export
    assert calc.signature == "Function CalcSum(Val Rows, Precision = ...) Export"
    assert calc.pragmas == ["&AtServer"]
    assert calc.region == "Public"
    assert (calc.start_line, calc.end_line) == (5, 11)
    assert log.signature == "Procedure Log(Text) Export"
    assert log.pragmas == []


def test_statements_split_on_semicolons_and_blocks(parser: BslModuleParser):
    module = parser.parse(UTILS_MODULE)
    calc = module.methods[0]
    lines = [module.line_of(s.start) for s in calc.statements]
    # Total = 0; / For ... Do / Total = ...; / EndDo; / Return ...;
    assert lines == [6, 7, 8, 9, 10]


def test_if_blocks(parser: BslModuleParser):
    module = parser.parse(ORDER_OBJECT_MODULE)
    before_write = module.methods[0]
    lines = [module.line_of(s.start) for s in before_write.statements]
    assert lines == [2, 3, 4, 5, 6]


def test_method_lookup_is_case_insensitive(parser: BslModuleParser):
    module = parser.parse(UTILS_MODULE)
    assert module.method_named("calcsum").name == "CalcSum"
    assert module.method_named("Missing") is None


def test_russian_keywords(parser: BslModuleParser):
    text = (
        "#Область Служебные\n"
        "Процедура Тест(Знач А, Б = 1) Экспорт\n"
        "\tСообщить(А);\n"
        "КонецПроцедуры\n"
        "#КонецОбласти\n"
        "Функция Вычислить()\n"
        "\tВозврат 1;\n"
        "КонецФункции\n"
    )
    module = parser.parse(text)
    assert [m.name for m in module.methods] == ["Тест", "Вычислить"]
    assert module.methods[0].signature == "Procedure Тест(Val А, Б = ...) Export"
    assert module.methods[0].region == "Служебные"
    assert module.methods[1].region is None
    assert module.methods[1].is_function


def test_fragments(parser: BslModuleParser):
    """A statement offset is addressed by fragment and resolves back to it."""
    module = parser.parse(UTILS_MODULE)
    offset = UTILS_MODULE.index("CalcSum(New Array)")

    fragment = module.fragment_for(offset)
    assert fragment == "//@methods.1/@statements.0/@offset.8"
    assert module.resolve_fragment(fragment) == offset
    assert module.line_of(module.resolve_fragment("//@methods.1/@statements.0")) == 14
    assert module.line_of(module.resolve_fragment("//@methods.0")) == 5


def test_declarations_have_no_fragment(parser: BslModuleParser):
    module = parser.parse(UTILS_MODULE)
    offset = UTILS_MODULE.index("CalcSum(Val")
    assert module.is_declaration(offset)
    assert module.fragment_for(offset) is None


def test_module_level_statements(parser: BslModuleParser):
    text = "Var Cache;\n\nProcedure A()\nEndProcedure\n\nCache = New Map;\n"
    module = parser.parse(text)
    assert len(module.statements) == 2
    offset = text.index("New Map")
    assert module.fragment_for(offset) == "//@statements.1/@offset.8"
    assert module.resolve_fragment("//@statements.1/@offset.8") == offset
    assert module.line_of(module.resolve_fragment("//@statements.1")) == 6


def test_resolve_fragment_errors(parser: BslModuleParser):
    module = parser.parse(UTILS_MODULE)
    with pytest.raises(ValueError):
        module.resolve_fragment("garbage")
    with pytest.raises(IndexError):
        module.resolve_fragment("//@methods.9/@statements.0")
    with pytest.raises(IndexError):
        module.resolve_fragment("//@methods.1/@statements.0/@offset.500")


def test_method_ordinal():
    assert method_ordinal("//@methods.3/@statements.1") == 3
    assert method_ordinal("//@statements.1") is None
    assert method_ordinal(None) is None


def test_fragment_inside_multiline_statement(parser: BslModuleParser):
    """A match on a continuation line resolves to that line, not the statement start."""
    text = (
        "Procedure Run(Rows)\n"
        "\tResult = Max(1,\n"
        "\t\tUtils.CalcSum(Rows));\n"
        "EndProcedure\n"
    )
    module = parser.parse(text)
    offset = text.index("Utils")

    fragment = module.fragment_for(offset)
    assert fragment.startswith("//@methods.0/@statements.0/@offset.")
    assert module.line_of(module.method_at(offset)[1].statements[0].start) == 2
    assert module.line_of(module.resolve_fragment(fragment)) == 3
