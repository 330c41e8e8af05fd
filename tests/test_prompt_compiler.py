from archai.models import RequirementRecord
from archai.pipeline.prompt_compiler import PromptCompiler

from conftest import complete_record, make_image


def test_compiled_prompt_contains_literal_values():
    prompt = PromptCompiler().compile(complete_record())

    assert "2000" in prompt
    assert "3 bedrooms, 2 baths" in prompt
    assert "modern" in prompt
    assert "Wheelchair accessible" in prompt
    assert "3'6\"" in prompt


def test_compile_is_deterministic():
    compiler = PromptCompiler()
    record = complete_record()

    assert compiler.compile(record) == compiler.compile(record)
    assert PromptCompiler().compile(complete_record()) == compiler.compile(record)


def test_partial_record_compiles():
    prompt = PromptCompiler().compile(RequirementRecord(vision="A tiny house"))

    assert "Vision: A tiny house" in prompt
    assert "Budget: \n" in prompt
    assert "Inspiration Image: none provided." in prompt


def test_inspiration_image_is_mentioned():
    record = complete_record().with_inspiration_image(make_image("ref"))
    prompt = PromptCompiler().compile(record)

    assert "Inspiration Image: attached as a reference (image/png)" in prompt
