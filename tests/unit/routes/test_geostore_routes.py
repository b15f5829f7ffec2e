import pytest

from geostore_api.errors import UpstreamQueryError, UpstreamUnavailableError
from geostore_api.models.pydantic.geostore import GeostoreRecord
from geostore_api.utils.geojson import geojson_hash, make_feature_collection
from geostore_api.utils.geostore import GEOJSONIO_URL
from tests.fixtures import ESRI_POLYGON, FEATURE, MONACO, SQUARE, SQUARE_WITH_HOLE
from tests.utils import geometry_rows


def raise_error(error):
    def handler(params):
        raise error

    return handler


@pytest.mark.asyncio
async def test_create_geostore(async_client):
    response = await async_client.post("/geostore/", json={"geojson": FEATURE})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    data = body["data"]
    expected_hash = geojson_hash(make_feature_collection(SQUARE, {"name": "square"}))
    assert data["type"] == "geoStore"
    assert data["id"] == expected_hash
    assert data["attributes"]["hash"] == expected_hash
    assert data["attributes"]["geojson"]["crs"] == {}
    assert data["attributes"]["geojson"]["features"][0]["properties"] == {
        "name": "square"
    }
    assert data["attributes"]["areaHa"] == 10.0
    assert data["attributes"]["bbox"] == [0.0, 0.0, 1.0, 1.0]
    assert data["attributes"]["info"] == {"use": {}}
    assert data["attributes"]["lock"] is False
    assert data["attributes"]["esrijson"] is None

    again = await async_client.post("/geostore/", json={"geojson": FEATURE})
    assert again.json()["data"]["id"] == expected_hash


@pytest.mark.asyncio
async def test_create_geostore_from_esrijson(async_client):
    response = await async_client.post("/geostore/", json={"esrijson": ESRI_POLYGON})

    assert response.status_code == 200
    geometry = response.json()["data"]["attributes"]["geojson"]["features"][0][
        "geometry"
    ]
    assert geometry == SQUARE_WITH_HOLE


@pytest.mark.parametrize(
    "payload",
    [{}, {"geojson": {"type": "Circle", "coordinates": [0, 0]}}, {"lock": True}],
)
@pytest.mark.asyncio
async def test_create_geostore_invalid_payload(async_client, payload):
    response = await async_client.post("/geostore/", json=payload)

    assert response.status_code == 422
    assert response.json()["status"] == "failed"


@pytest.mark.asyncio
async def test_create_geostore_mixed_geometries(async_client):
    geojson = {
        "type": "FeatureCollection",
        "features": [
            {"type": "Feature", "properties": None, "geometry": SQUARE},
            {
                "type": "Feature",
                "properties": None,
                "geometry": {"type": "Point", "coordinates": [0, 0]},
            },
        ],
    }
    response = await async_client.post("/geostore/", json={"geojson": geojson})

    assert response.status_code == 400
    assert response.json()["status"] == "failed"


@pytest.mark.asyncio
async def test_locked_geostore_conflict(async_client):
    first = await async_client.post("/geostore/", json={"geojson": SQUARE, "lock": True})
    assert first.status_code == 200
    assert first.json()["data"]["attributes"]["lock"] is True

    second = await async_client.post("/geostore/", json={"geojson": SQUARE})
    assert second.status_code == 409
    assert second.json()["status"] == "failed"


@pytest.mark.asyncio
async def test_lock_request_on_stored_geometry_is_ignored(async_client):
    first = await async_client.post("/geostore/", json={"geojson": SQUARE})
    second = await async_client.post("/geostore/", json={"geojson": SQUARE, "lock": True})

    assert second.status_code == 200
    assert second.json()["data"]["id"] == first.json()["data"]["id"]
    assert second.json()["data"]["attributes"]["lock"] is False


@pytest.mark.asyncio
async def test_get_national_locked_geometry_conflict(async_client, store):
    feature_collection = make_feature_collection(MONACO)
    locked = GeostoreRecord(
        hash=geojson_hash(feature_collection),
        geojson=feature_collection,
        info={"use": {}},
        lock=True,
    )
    store.records[locked.hash] = locked

    response = await async_client.get("/geostore/admin/MCO")

    assert response.status_code == 409
    assert response.json() == {
        "status": "failed",
        "message": f"Geostore {locked.hash} is locked and cannot be modified",
    }


@pytest.mark.asyncio
async def test_create_geostore_rejected_provider_query(async_client, carto_client):
    carto_client.handlers["FROM my_table"] = raise_error(
        UpstreamQueryError('column "foo" does not exist', 400)
    )
    provider = {
        "type": "carto",
        "table": "my_table",
        "user": "someone",
        "filter": "foo = 1",
    }
    response = await async_client.post("/geostore/", json={"provider": provider})

    assert response.status_code == 400
    assert response.json()["message"] == 'column "foo" does not exist'


@pytest.mark.asyncio
async def test_unknown_provider_type(async_client):
    provider = {"type": "gee", "table": "t", "user": "u", "filter": "a = 1"}
    response = await async_client.post("/geostore/", json={"provider": provider})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_get_geostore(async_client):
    created = await async_client.post("/geostore/", json={"geojson": SQUARE})
    geostore_id = created.json()["data"]["id"]

    response = await async_client.get(f"/geostore/{geostore_id}")
    assert response.status_code == 200
    assert response.json()["data"]["id"] == geostore_id
    assert response.json()["data"]["attributes"]["esrijson"] is None

    esri = await async_client.get(f"/geostore/{geostore_id}?format=esri")
    assert esri.status_code == 200
    esrijson = esri.json()["data"]["attributes"]["esrijson"]
    assert esrijson["spatialReference"] == {"wkid": 4326}
    assert len(esrijson["rings"]) == 1


@pytest.mark.asyncio
async def test_get_geostore_not_found(async_client):
    response = await async_client.get("/geostore/0123456789abcdef")

    assert response.status_code == 404
    assert response.json() == {
        "status": "failed",
        "message": "GeoStore 0123456789abcdef not found",
    }


@pytest.mark.asyncio
async def test_get_geostore_bad_format(async_client):
    response = await async_client.get("/geostore/0123456789abcdef?format=kml")
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_view_geostore(async_client):
    created = await async_client.post("/geostore/", json={"geojson": SQUARE})
    geostore_id = created.json()["data"]["id"]

    response = await async_client.get(f"/geostore/{geostore_id}/view")

    assert response.status_code == 200
    assert response.json()["view_link"].startswith(GEOJSONIO_URL)


@pytest.mark.asyncio
async def test_view_geostore_too_large(async_client, monkeypatch):
    created = await async_client.post("/geostore/", json={"geojson": SQUARE})
    geostore_id = created.json()["data"]["id"]
    monkeypatch.setattr("geostore_api.utils.geostore.GEOJSONIO_MAX_URL_LEN", 10)

    response = await async_client.get(f"/geostore/{geostore_id}/view")

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_find_by_ids(async_client):
    created = await async_client.post("/geostore/", json={"geojson": SQUARE})
    geostore_id = created.json()["data"]["id"]

    response = await async_client.post(
        "/geostore/find-by-ids", json={"geostores": [geostore_id, "missing"]}
    )

    assert response.status_code == 200
    body = response.json()
    assert [item["id"] for item in body["data"]] == [geostore_id]
    assert body["info"] == {"found": 1, "foundIds": [geostore_id], "returned": 1}

    missing = await async_client.post(
        "/geostore/find-by-ids", json={"geostores": ["missing"]}
    )
    assert missing.status_code == 404
    assert missing.json()["message"] == "No GeoStores found"


@pytest.mark.asyncio
async def test_calculate_area(async_client, carto_client, store):
    carto_client.handlers["SELECT ST_Area(geography(g.geom))"] = lambda params: [
        {"area_ha": 12345.6}
    ]

    response = await async_client.post("/geostore/area", json={"geojson": FEATURE})

    assert response.status_code == 200
    assert response.json()["data"] == {
        "type": "geomArea",
        "attributes": {"areaHa": 12345.6, "bbox": [0.0, 0.0, 1.0, 1.0]},
    }
    assert store.records == {}


@pytest.mark.asyncio
async def test_get_national(async_client, carto_client):
    response = await async_client.get("/geostore/admin/MCO")

    assert response.status_code == 200
    attributes = response.json()["data"]["attributes"]
    assert attributes["info"]["iso"] == "MCO"
    assert attributes["info"]["simplifyThresh"] == 0.005
    assert attributes["areaHa"] == 200.5

    again = await async_client.get("/geostore/admin/mco")
    assert again.json()["data"]["id"] == response.json()["data"]["id"]
    assert len(carto_client.queries_matching("gadm36_countries")) == 1


@pytest.mark.asyncio
async def test_get_national_simplify(async_client, carto_client):
    response = await async_client.get("/geostore/admin/MCO?simplify=0.5")

    assert response.status_code == 200
    assert response.json()["data"]["attributes"]["info"]["simplifyThresh"] == 0.5


@pytest.mark.parametrize("simplify", ["2", "abc", "0"])
@pytest.mark.asyncio
async def test_get_national_bad_simplify(async_client, carto_client, simplify):
    response = await async_client.get(f"/geostore/admin/MCO?simplify={simplify}")

    assert response.status_code == 400
    assert response.json()["status"] == "failed"
    assert carto_client.queries == []


@pytest.mark.asyncio
async def test_get_national_not_found(async_client):
    response = await async_client.get("/geostore/admin/AFG")

    assert response.status_code == 404
    assert response.json() == {"status": "failed", "message": "Country not found"}


@pytest.mark.asyncio
async def test_get_national_invalid_iso(async_client):
    response = await async_client.get("/geostore/admin/AF")
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_get_subnational_and_regional(async_client, carto_client):
    carto_client.handlers["FROM gadm36_adm1"] = geometry_rows(SQUARE, 5.0, name="Acre")

    region = await async_client.get("/geostore/admin/BRA/1")
    assert region.status_code == 200
    assert region.json()["data"]["attributes"]["info"]["id1"] == 1
    assert region.json()["data"]["attributes"]["info"]["name"] == "Acre"

    district = await async_client.get("/geostore/admin/BRA/1/2")
    assert district.status_code == 404
    assert district.json()["message"] == "District not found"


@pytest.mark.asyncio
async def test_admin_list(async_client, carto_client):
    carto_client.handlers["gadm36_adm0"] = lambda params: [
        {"iso": "MCO", "name": "Monaco"}
    ]
    created = await async_client.get("/geostore/admin/MCO")

    response = await async_client.get("/geostore/admin/list")

    assert response.status_code == 200
    assert response.json()["data"] == [
        {
            "geostoreId": created.json()["data"]["id"],
            "iso": "MCO",
            "name": "Monaco",
        }
    ]


@pytest.mark.asyncio
async def test_get_use(async_client, carto_client):
    carto_client.handlers["FROM gfw_mining"] = geometry_rows(SQUARE, 3.0)

    response = await async_client.get("/geostore/use/mining/12")

    assert response.status_code == 200
    assert response.json()["data"]["attributes"]["info"] == {
        "use": {"use": "gfw_mining", "id": 12},
        "simplify": False,
    }


@pytest.mark.asyncio
async def test_get_use_unknown_table(async_client, carto_client):
    carto_client.handlers["FROM no_such_table"] = raise_error(
        UpstreamQueryError('relation "no_such_table" does not exist', 400)
    )

    response = await async_client.get("/geostore/use/no_such_table/1")

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_get_wdpa(async_client, carto_client):
    carto_client.handlers["WHERE wdpaid = 142"] = geometry_rows(SQUARE, 3.0)

    response = await async_client.get("/geostore/wdpa/142")
    assert response.status_code == 200
    assert response.json()["data"]["attributes"]["info"] == {"use": {}, "wdpaid": 142}

    assert (await async_client.get("/geostore/wdpa/143")).status_code == 404
    assert (await async_client.get("/geostore/wdpa/abc")).status_code == 400


@pytest.mark.asyncio
async def test_upstream_unavailable(async_client, carto_client):
    carto_client.handlers["FROM gadm36_adm1"] = raise_error(
        UpstreamUnavailableError(
            "Geometry data source is unavailable. Please try again later."
        )
    )

    response = await async_client.get("/geostore/admin/BRA/1")

    assert response.status_code == 503
    assert response.json() == {
        "status": "error",
        "message": "Geometry data source is unavailable. Please try again later.",
    }


@pytest.mark.asyncio
async def test_upstream_rejected_query(async_client, carto_client):
    carto_client.handlers["FROM gadm36_adm1"] = raise_error(
        UpstreamQueryError("syntax error", 400)
    )

    response = await async_client.get("/geostore/admin/BRA/1")

    assert response.status_code == 502
    assert response.json()["status"] == "error"
