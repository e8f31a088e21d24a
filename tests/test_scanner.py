"""Tests for routescan.scanner."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor

from routescan.analyzers.resolver import SourceCache, SymbolResolver
from routescan.models import FieldSchema
from routescan.scanner import IgnoreRule, IgnoreRules, ProjectScanner

USERS_ROUTE = """
import express from 'express';
import { z } from 'zod';

const app = express();

export const CreateUserSchema = z.object({
  name: z.string().describe('Full name of the user'),
  /** Contact address */
  email: z.string().email(),
  age: z.number().min(18),
});

app.post('/users', validate(CreateUserSchema), createUser);
"""


def test_route_with_local_schema_and_descriptions(repo_builder) -> None:
    repo_builder.write({"src/users.ts": USERS_ROUTE})

    routes = repo_builder.scan()

    assert len(routes) == 1
    route = routes[0]
    assert (route.method, route.path) == ("POST", "/users")
    assert route.file == repo_builder.file("src/users.ts")
    assert route.line == 13
    assert route.handler == "createUser"
    assert route.body is not None
    assert route.body.fields == (
        FieldSchema(name="name", type="string", description="Full name of the user"),
        FieldSchema(name="email", type="string", format="email", description="Contact address"),
        FieldSchema(name="age", type="number", minimum=18),
    )
    assert route.query is None
    assert route.responses == {}


def test_controller_body_resolved_across_files(repo_builder) -> None:
    repo_builder.write(
        {
            "src/schemas.ts": """
            import { z } from 'zod';

            export const UpdateUserSchema = z.object({
              id: z.string().uuid(),
              name: z.string().optional(),
              tags: z.array(z.string()),
            });
            """,
            "src/user.controller.ts": """
            import { JsonController, Get, UseBefore } from 'routing-controllers';
            import { UpdateUserSchema } from './schemas';

            @JsonController('/users')
            export class UserController {
              @Get('/:id')
              @UseBefore(RequestValidatorMiddleware({ body: UpdateUserSchema }))
              getOne() {}
            }
            """,
        }
    )

    routes = repo_builder.scan()

    assert [(route.method, route.path) for route in routes] == [("GET", "/users/{id}")]
    route = routes[0]
    assert route.raw_path == "/users/:id"
    assert route.framework == "Controller"
    direct = SymbolResolver(SourceCache()).resolve("UpdateUserSchema", repo_builder.file("src/schemas.ts"))
    assert route.body == direct
    assert route.body.field_names == ["id", "name", "tags"]


def test_unresolved_reference_keeps_route(repo_builder) -> None:
    repo_builder.write(
        {
            "src/orders.ts": """
            import { OrderSchema } from '@acme/contracts';

            router.post('/orders', validate(OrderSchema), createOrder);
            router.get('/orders/:id', getOrder);
            """,
        }
    )

    routes = repo_builder.scan()

    assert [(route.method, route.path) for route in routes] == [
        ("POST", "/orders"),
        ("GET", "/orders/{id}"),
    ]
    assert routes[0].body is None


def test_unresolved_responses_are_dropped(repo_builder) -> None:
    repo_builder.write(
        {
            "src/types.ts": """
            export interface UserResponse { id: string; name?: string }
            """,
            "src/controller.ts": """
            import { UserResponse } from './types';

            @Controller('users')
            export class UsersController {
              @Get(':id')
              @ApiResponse({ status: 404, type: NotFoundError })
              findOne(): Promise<UserResponse> {}
            }
            """,
        }
    )

    (route,) = repo_builder.scan()

    assert list(route.responses) == ["200"]
    assert route.responses["200"].field_names == ["id", "name"]
    assert route.responses["200"].required == ["id"]


def test_routes_follow_file_then_source_order(repo_builder) -> None:
    repo_builder.write(
        {
            "src/routes/b.ts": "router.get('/b1', b1);\nrouter.get('/b2', b2);\n",
            "src/routes/a.ts": "router.get('/a1', a1);\nrouter.delete('/a2', a2);\n",
            "src/index.ts": "app.get('/', home);\n",
        }
    )

    routes = repo_builder.scan()

    assert [(route.method, route.path) for route in routes] == [
        ("GET", "/"),
        ("GET", "/a1"),
        ("DELETE", "/a2"),
        ("GET", "/b1"),
        ("GET", "/b2"),
    ]


def test_scan_is_repeatable(repo_builder) -> None:
    repo_builder.write({"src/users.ts": USERS_ROUTE})
    scanner = ProjectScanner()
    target = [str(repo_builder.path())]

    assert scanner.scan(target) == scanner.scan(target)


def test_concurrent_scans_do_not_interfere(repo_builder) -> None:
    for tree, fields in (("shop", "sku: z.string(), price: z.number()"), ("blog", "title: z.string()")):
        repo_builder.write(
            {
                f"{tree}/schemas.ts": f"import {{ z }} from 'zod';\nexport const ItemSchema = z.object({{ {fields} }});\n",
                f"{tree}/routes.ts": (
                    "import { ItemSchema } from './schemas';\n"
                    "router.post('/items', validate(ItemSchema), createItem);\n"
                ),
            }
        )
    scanner = ProjectScanner()
    targets = {tree: [str(repo_builder.path() / tree)] for tree in ("shop", "blog")}
    expected = {tree: scanner.scan(paths) for tree, paths in targets.items()}

    with ThreadPoolExecutor(max_workers=4) as pool:
        futures = [(tree, pool.submit(scanner.scan, paths)) for tree, paths in targets.items() for _ in range(4)]
        results = [(tree, future.result()) for tree, future in futures]

    assert expected["shop"][0].body.field_names == ["sku", "price"]
    assert expected["blog"][0].body.field_names == ["title"]
    for tree, routes in results:
        assert routes == expected[tree]


def test_derived_schema_resolves_for_route(repo_builder) -> None:
    repo_builder.write(
        {
            "src/schemas.ts": """
            import { z } from 'zod';

            export const BaseUserSchema = z.object({ name: z.string(), email: z.string().email() });
            export const AdminUserSchema = BaseUserSchema.extend({ role: z.string() });
            """,
            "src/admins.ts": """
            import { AdminUserSchema } from './schemas';

            app.post('/admins', validate(AdminUserSchema), createAdmin);
            """,
        }
    )

    (route,) = repo_builder.scan()

    assert route.body is not None
    assert route.body.field_names == ["name", "email", "role"]
    assert route.body.required == ["name", "email", "role"]


def test_excluded_directories_and_patterns(repo_builder) -> None:
    repo_builder.write(
        {
            ".gitignore": "generated/\n",
            "src/app.ts": "app.get('/kept', kept);\n",
            "src/app.test.ts": "app.get('/test-only', t);\n",
            "node_modules/lib/index.js": "app.get('/vendored', v);\n",
            "dist/app.js": "app.get('/compiled', c);\n",
            "generated/client.ts": "app.get('/generated', g);\n",
            "legacy/old.ts": "app.get('/legacy', l);\n",
            "README.md": "app.get('/docs', d);\n",
        }
    )

    routes = repo_builder.scan(exclude_paths=["legacy/**", "*.test.ts"])

    assert [route.path for route in routes] == ["/kept"]


def test_single_files_and_globs(repo_builder) -> None:
    repo_builder.write(
        {
            "src/a.ts": "app.get('/a', a);\n",
            "src/nested/b.tsx": "app.get('/b', b);\n",
            "src/c.js": "app.get('/c', c);\n",
        }
    )

    single = repo_builder.scan(paths=["src/c.js"])
    globbed = repo_builder.scan(paths=["src/**/*.ts*"])
    overlapping = repo_builder.scan(paths=["src/a.ts", "src"])

    assert [route.path for route in single] == ["/c"]
    assert [route.path for route in globbed] == ["/a", "/b"]
    assert [route.path for route in overlapping] == ["/a", "/c", "/b"]


def test_unreadable_and_missing_paths_are_skipped(repo_builder, caplog) -> None:
    repo_builder.write({"src/ok.ts": "app.get('/ok', ok);\n"})
    (repo_builder.path() / "src" / "broken.ts").write_bytes(b"app.get('/broken', \xff\xfe);\n")

    with caplog.at_level(logging.WARNING, logger="routescan"):
        routes = repo_builder.scan(paths=["src", "missing"])

    assert [route.path for route in routes] == ["/ok"]
    assert "Skipping unreadable file" in caplog.text
    assert "Scan path not found" in caplog.text


def test_ignore_rule_parsing() -> None:
    assert IgnoreRule.parse("   ") is None
    assert IgnoreRule.parse("# comment") is None
    assert IgnoreRule.parse("/legacy") == IgnoreRule("legacy", anchored=True)
    assert IgnoreRule.parse("generated/") == IgnoreRule("generated", directory_only=True)
    assert IgnoreRule.parse("src/gen/**") == IgnoreRule("src/gen/**", anchored=True)
    assert IgnoreRule.parse("**/*.spec.ts") == IgnoreRule("*.spec.ts")
    assert IgnoreRule.parse("!keep.ts") == IgnoreRule("keep.ts", negate=True)


def test_ignore_rule_matching() -> None:
    directory = IgnoreRule.parse("generated/")
    assert directory.matches("src/generated", True)
    assert directory.matches("src/generated/client.ts", False)
    assert not directory.matches("src/generated", False)

    anchored = IgnoreRule.parse("/legacy")
    assert anchored.matches("legacy", True)
    assert anchored.matches("legacy/old.ts", False)
    assert not anchored.matches("src/legacy", True)

    pattern = IgnoreRule.parse("*.spec.ts")
    assert pattern.matches("src/users.spec.ts", False)
    assert not pattern.matches("src/users.ts", False)


def test_ignore_rules_last_match_wins(tmp_path) -> None:
    gitignore = tmp_path / ".gitignore"
    gitignore.write_text("# generated code\n*.gen.ts\n!keep.gen.ts\n", encoding="utf-8")

    rules = IgnoreRules.from_gitignore(gitignore) + IgnoreRules.from_patterns(["drop.ts"])

    assert len(rules) == 3
    assert rules.ignored("src/a.gen.ts", False)
    assert not rules.ignored("src/keep.gen.ts", False)
    assert rules.ignored("drop.ts", False)
    assert not rules.ignored("src/app.ts", False)
    assert len(IgnoreRules.from_gitignore(tmp_path / "missing")) == 0
