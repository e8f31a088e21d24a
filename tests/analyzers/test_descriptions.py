"""Tests for field description lookup."""

from __future__ import annotations

import pytest

from routescan.analyzers.descriptions import clean_comment
from routescan.analyzers.dialects import normalize


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("// trailing note", "trailing note"),
        ("/** Display name */", "Display name"),
        ("/* plain block */", "plain block"),
        ("/**\n * First line\n * second line\n * @example Bob\n */", "First line second line"),
        ("/** @deprecated */", None),
        ("//", None),
    ],
)
def test_clean_comment(raw: str, expected: str | None) -> None:
    assert clean_comment(raw) == expected


def _descriptions(source, name: str) -> dict:
    schema = normalize(source.declarations[name])
    return {item.name: item.description for item in schema.fields}


def test_precedence_explicit_then_doc_then_block_then_trailing(parse_source) -> None:
    source = parse_source(
        """
        const ProfileSchema = z.object({
          /** Documented name */
          name: z.string().describe('Explicit name'),
          /** Documented email */
          /* block email */
          email: z.string(), // trailing email
          /* block nickname */
          nickname: z.string(), // trailing nickname
          age: z.number(), // trailing age
          plain: z.string(),
        });
        """
    )

    assert _descriptions(source, "ProfileSchema") == {
        "name": "Explicit name",
        "email": "Documented email",
        "nickname": "block nickname",
        "age": "trailing age",
        "plain": None,
    }


def test_trailing_comment_of_previous_field_is_not_leading(parse_source) -> None:
    source = parse_source(
        """
        const S = z.object({
          first: z.string(), // about first
          second: z.string(),
        });
        """
    )

    assert _descriptions(source, "S") == {"first": "about first", "second": None}


def test_blank_line_separates_comment_from_field(parse_source) -> None:
    source = parse_source(
        """
        const S = z.object({
          /** Section header */

          field: z.string(),
        });
        """
    )

    assert _descriptions(source, "S") == {"field": None}


def test_class_members_with_decorators(parse_source) -> None:
    source = parse_source(
        """
        export class CreateUserDto {
          /** Name shown to other users */
          @IsString()
          name: string;

          @IsEmail()
          email: string; // Valid email address

          @ApiProperty({ description: 'Age in years' })
          /** ignored in favour of the annotation */
          age: number;
        }
        """
    )

    assert _descriptions(source, "CreateUserDto") == {
        "name": "Name shown to other users",
        "email": "Valid email address",
        "age": "Age in years",
    }


def test_interface_comments(parse_source) -> None:
    source = parse_source(
        """
        interface UserResponse {
          /** Unique identifier */
          id: string;
          name: string; // Display name
          /**
           * Creation time.
           * @format date-time
           */
          createdAt: Date;
        }
        """
    )

    assert _descriptions(source, "UserResponse") == {
        "id": "Unique identifier",
        "name": "Display name",
        "createdAt": "Creation time.",
    }
