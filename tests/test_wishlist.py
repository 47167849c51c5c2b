PRODUCT = {"id": "p1", "name": "Scrub Set", "price": 899}


def toggle(client, email="Asha@KiranSales.in", product=PRODUCT, action="add"):
    res = client.post("/api/wishlist", json={"email": email, "product": product, "action": action})
    assert res.status_code == 200
    return res.json()["items"]


def test_add_is_idempotent(client, db):
    toggle(client)
    items = toggle(client)
    assert [i["id"] for i in items] == ["p1"]
    assert db["wishlists"].count_documents({}) == 1


def test_lookup_ignores_email_case(client, db):
    toggle(client, email="Asha@KiranSales.in")
    toggle(client, email="asha@kiransales.in", product={"id": "p2", "name": "Lab Coat"})
    assert db["wishlists"].count_documents({}) == 1
    # keeps the case of the first write
    assert db["wishlists"].find_one({})["email"] == "Asha@KiranSales.in"
    res = client.get("/api/wishlist", params={"email": "ASHA@kiransales.in"})
    assert [i["id"] for i in res.json()["items"]] == ["p1", "p2"]


def test_email_is_matched_literally(client, db):
    toggle(client, email="a.b@x.in")
    res = client.get("/api/wishlist", params={"email": "aXb@x.in"})
    assert res.json()["items"] == []


def test_remove_matches_id_or_legacy_id(client, db):
    db["wishlists"].insert_one({"email": "r@r.in", "items": [{"_id": "p1"}, {"id": "p2"}]})
    items = toggle(client, email="r@r.in", product={"id": "p1"}, action="remove")
    assert items == [{"id": "p2"}]


def test_add_skips_item_stored_under_legacy_id(client, db):
    db["wishlists"].insert_one({"email": "r@r.in", "items": [{"_id": "p1"}]})
    items = toggle(client, email="r@r.in", product={"id": "p1"})
    assert len(items) == 1


def test_remove_missing_is_noop(client):
    toggle(client)
    items = toggle(client, product={"id": "nope"}, action="remove")
    assert [i["id"] for i in items] == ["p1"]


def test_pagination(client):
    for n in range(5):
        toggle(client, product={"id": f"p{n}"})
    res = client.get("/api/wishlist", params={"email": "asha@kiransales.in", "limit": 2, "page": 2}).json()
    assert [i["id"] for i in res["items"]] == ["p2", "p3"]
    assert res["hasMore"] is True
    res = client.get("/api/wishlist", params={"email": "asha@kiransales.in", "limit": 2, "page": 3}).json()
    assert res["hasMore"] is False


def test_validation(client):
    assert client.get("/api/wishlist").status_code == 400
    assert client.post("/api/wishlist", json={"email": "a@a.in", "product": {"name": "x"}}).status_code == 400
    assert client.get("/api/wishlist", params={"email": "nobody@x.in"}).json() == {"items": [], "hasMore": False}
