import pytest

from querykit.errors import ConfigurationError, InsertValuesError, InvalidJoinKind
from querykit.state.query_state import ACCEPTED_JOINS, QuerySpec


def users():
    return QuerySpec(table="users")


def test_bare_select():
    stmt = users().render_select()
    assert stmt.sql == "SELECT * FROM users"
    assert stmt.params == ()


def test_placeholders_match_predicates_in_append_order():
    spec = (
        users()
        .where("name", "=", "Ann")
        .or_where("age", "<", "30")
        .not_where("email", "LIKE", "%@spam.com")
        .where("id", "!=", "7")
    )
    stmt = spec.render_select()

    assert stmt.sql.count("?") == 4
    assert stmt.params == ("Ann", "30", "%@spam.com", "7")
    assert stmt.sql == (
        "SELECT * FROM users WHERE name = ? OR age < ? "
        "NOT NOT email LIKE ? AND id != ?"
    )


def test_not_where_as_first_predicate_keeps_prefix():
    stmt = users().not_where("age", ">", "18").render_select()
    assert stmt.sql == "SELECT * FROM users WHERE NOT age > ?"
    assert stmt.params == ("18",)


def test_first_and_or_predicate_has_no_connective():
    assert users().or_where("a", "=", 1).render_select().sql == "SELECT * FROM users WHERE a = ?"
    assert users().where("a", "=", 1).render_select().sql == "SELECT * FROM users WHERE a = ?"


def test_clause_order_is_fixed():
    spec = (
        users()
        .limit(10)
        .offset(20)
        .order("name", "DESC")
        .or_where("age", ">", "65")
        .where("name", "=", "Ann")
        .join("LEFT JOIN", "orders", "orders.user_id = users.id")
        .select("users.name, orders.total")
    )
    stmt = spec.render_select()

    assert stmt.sql == (
        "SELECT users.name, orders.total FROM users "
        "LEFT JOIN orders ON orders.user_id = users.id "
        "WHERE age > ? AND name = ? "
        "ORDER BY name DESC LIMIT 10 OFFSET 20"
    )
    positions = [
        stmt.sql.index(kw)
        for kw in ("SELECT", "FROM", "JOIN", "WHERE", "ORDER BY", "LIMIT", "OFFSET")
    ]
    assert positions == sorted(positions)
    assert stmt.params == ("65", "Ann")


def test_joins_render_in_insertion_order():
    spec = (
        users()
        .join("INNER JOIN", "orders", "orders.user_id = users.id")
        .join("LEFT OUTER JOIN", "refunds", "refunds.order_id = orders.id")
    )
    assert spec.render_select().sql == (
        "SELECT * FROM users "
        "INNER JOIN orders ON orders.user_id = users.id "
        "LEFT OUTER JOIN refunds ON refunds.order_id = orders.id"
    )


@pytest.mark.parametrize("kind", ACCEPTED_JOINS)
def test_accepted_join_kinds(kind):
    assert users().join(kind, "t", "x=y").joins[0].kind == kind


@pytest.mark.parametrize("kind", ["BAD JOIN", "inner join", "FULL OUTER JOIN", "JOIN", "CROSS JOIN"])
def test_invalid_join_kind_is_rejected(kind):
    spec = users().join("INNER JOIN", "a", "a.id = users.id")
    with pytest.raises(InvalidJoinKind) as exc:
        spec.join(kind, "t", "x=y")
    assert exc.value.kind == kind
    assert isinstance(exc.value, ConfigurationError)
    assert len(spec.joins) == 1


def test_order_last_write_wins():
    spec = users().order("name", "ASC").order("age, id", "DESC")
    assert spec.render_select().sql == "SELECT * FROM users ORDER BY age, id DESC"


def test_offset_without_limit_is_suppressed():
    assert users().offset(5).render_select().sql == "SELECT * FROM users"
    assert users().offset(5).limit(2).render_select().sql == "SELECT * FROM users LIMIT 2 OFFSET 5"


def test_limit_zero_is_a_real_limit():
    assert users().limit(0).render_select().sql == "SELECT * FROM users LIMIT 0"


@pytest.mark.parametrize("bad", [-1, "10", 1.5, True])
def test_limit_and_offset_reject_non_natural_numbers(bad):
    with pytest.raises(ConfigurationError):
        users().limit(bad)
    with pytest.raises(ConfigurationError):
        users().offset(bad)


def test_spec_is_immutable():
    base = users()
    filtered = base.where("age", ">", "18").limit(3)

    assert base.predicates == ()
    assert base.row_limit is None
    assert base.render_select().sql == "SELECT * FROM users"
    assert filtered.render_select().sql == "SELECT * FROM users WHERE age > ? LIMIT 3"


def test_render_requires_table():
    with pytest.raises(ConfigurationError):
        QuerySpec().render_select()
    with pytest.raises(ConfigurationError):
        QuerySpec().render_delete()


def test_insert_rendering():
    stmt = users().render_insert("name,email", ["Ann", "a@x.com"])
    assert stmt.sql == "INSERT INTO users (name,email) VALUES (?,?)"
    assert stmt.params == ("Ann", "a@x.com")


def test_insert_ignores_query_state():
    spec = users().where("id", "=", "1").join("INNER JOIN", "o", "o.u = users.id").limit(1)
    stmt = spec.render_insert("name", ["Bob"])
    assert stmt.sql == "INSERT INTO users (name) VALUES (?)"
    assert stmt.params == ("Bob",)


def test_insert_without_values_is_rejected():
    with pytest.raises(InsertValuesError):
        users().render_insert("name", [])


def test_insert_column_value_mismatch_is_rejected():
    with pytest.raises(InsertValuesError):
        users().render_insert("name,email", ["Ann"])
    with pytest.raises(InsertValuesError):
        users().render_insert("name", ["Ann", "a@x.com"])


def test_delete_rendering():
    spec = (
        users()
        .where("age", "<", "18")
        .or_where("email", "=", "")
        .join("INNER JOIN", "orders", "orders.user_id = users.id")
        .order("id")
        .limit(5)
        .offset(10)
    )
    stmt = spec.render_delete()
    assert stmt.sql == "DELETE FROM users WHERE age < ? OR email = ? LIMIT 5"
    assert stmt.params == ("18", "")


def test_delete_without_predicates():
    assert users().render_delete().sql == "DELETE FROM users"


def test_limit_zero_differs_from_unset():
    assert users().row_limit is None
    assert "LIMIT" not in users().render_select().sql
    assert users().limit(0).row_limit == 0
    assert users().limit(0).offset(5).render_select().sql == "SELECT * FROM users LIMIT 0 OFFSET 5"
