import json

from models import SearchCriteria
from scrapers import PARSERS
from scrapers.aramisauto import AramisautoParser
from scrapers.autoscout24 import AutoScout24Parser
from scrapers.kyump import KyumpParser
from scrapers.lacentrale import LaCentraleParser
from scrapers.leboncoin import LeBonCoinParser
from scrapers.leparking import LeParkingParser
from scrapers.paruvendu import ParuVenduParser
from scrapers.procarlease import ProCarLeaseParser
from scrapers.transakauto import TransakAutoParser

CRITERIA = SearchCriteria(brand="Peugeot", model="208", max_price=12000)


def _page(body: str) -> str:
    return f"<html><head><title>Résultats</title></head><body>{body}</body></html>"


def _next_data(payload: dict) -> str:
    return f'<script id="__NEXT_DATA__" type="application/json">{json.dumps(payload)}</script>'


def test_registry_has_every_parser() -> None:
    assert set(PARSERS) == {
        "leboncoin", "lacentrale", "procarlease", "autoscout24", "leparking", "paruvendu",
        "transakauto", "aramisauto", "kyump",
    }


# --- LeBonCoin ---

def test_leboncoin_search_url() -> None:
    parser = LeBonCoinParser()
    criteria = SearchCriteria(brand="Peugeot", model="208", max_price=12000, min_year=2016, fuel="Diesel")

    first = parser.search_url(criteria)
    second = parser.search_url(criteria, page=2)

    assert first.startswith("https://www.leboncoin.fr/recherche?")
    assert "category=2" in first
    assert "text=Peugeot+208" in first
    assert "price=min-12000" in first
    assert "regdate=2016-max" in first
    assert "fuel=2" in first
    assert "page=" not in first
    assert "page=2" in second


def test_leboncoin_reads_next_data_ads() -> None:
    ads = [
        {
            "list_id": 2456789012,
            "subject": "Peugeot 208 1.2 PureTech",
            "url": "https://www.leboncoin.fr/ad/voitures/2456789012",
            "price": [9490],
            "location": {"city": "Lyon"},
            "images": {"urls_thumb": ["https://img.leboncoin.fr/1.jpg"]},
            "attributes": [
                {"key": "brand", "value": "Peugeot"},
                {"key": "model", "value": "208"},
                {"key": "regdate", "value": "2018"},
                {"key": "mileage", "value": "67000", "value_label": "67 000 km"},
                {"key": "fuel", "value": "1", "value_label": "Essence"},
                {"key": "gearbox", "value": "1", "value_label": "Manuelle"},
            ],
        },
        {"list_id": 2456789099, "subject": "Peugeot 208 GTi", "price": [15000]},
    ]
    markup = _page(_next_data({"props": {"pageProps": {"searchData": {"ads": ads}}}}))

    listings = LeBonCoinParser().parse(markup, CRITERIA)

    assert len(listings) == 1
    listing = listings[0]
    assert listing.external_id == "2456789012"
    assert listing.price == 9490
    assert listing.year == "2018"
    assert listing.mileage == "67 000 km"
    assert listing.city == "Lyon"
    assert listing.image_url == "https://img.leboncoin.fr/1.jpg"
    assert listing.fuel == "Essence"
    assert (listing.brand, listing.model) == ("Peugeot", "208")


def test_leboncoin_falls_back_to_ad_cards() -> None:
    markup = _page("""
        <a data-qa-id="aditem_container" href="/ad/voitures/2456789013">
          <p data-qa-id="aditem_title">Peugeot 208 Allure</p>
          <span data-qa-id="aditem_price">8 990 €</span>
          <p data-qa-id="aditem_params">2018 · 67 000 km · Essence</p>
          <p data-qa-id="aditem_location">Paris 75011</p>
        </a>
    """)

    listings = LeBonCoinParser().parse(markup, CRITERIA)

    assert len(listings) == 1
    assert listings[0].title == "Peugeot 208 Allure"
    assert listings[0].url == "https://www.leboncoin.fr/ad/voitures/2456789013"
    assert listings[0].external_id == "2456789013"
    assert listings[0].price == "8 990 €"
    assert listings[0].city == "Paris 75011"
    assert (listings[0].year, listings[0].mileage) == ("2018", "67 000")


# --- LaCentrale ---

def test_lacentrale_search_url() -> None:
    url = LaCentraleParser().search_url(SearchCriteria(brand="Peugeot", model="208", max_price=12000), page=3)

    assert url.startswith("https://www.lacentrale.fr/listing?")
    assert "makesModelsCommercialNames=PEUGEOT%3A208" in url
    assert "priceMax=12000" in url
    assert "page=3" in url


def test_lacentrale_reads_initial_state() -> None:
    state = {
        "search": {
            "hits": [
                {
                    "item": {
                        "reference": "E106123456",
                        "price": 10900,
                        "vehicle": {
                            "make": "PEUGEOT",
                            "model": "208",
                            "version": "1.2 PureTech 82",
                            "year": 2019,
                            "mileage": 45000,
                            "energy": "ESSENCE",
                            "gearbox": "MANUELLE",
                        },
                        "location": {"city": "Nantes"},
                        "photoUrl": "https://photos.lacentrale.fr/a.jpg",
                    }
                }
            ]
        }
    }
    markup = _page(f"<script>window.__INITIAL_STATE__ = {json.dumps(state)};</script>")

    listings = LaCentraleParser().parse(markup, CRITERIA)

    assert len(listings) == 1
    listing = listings[0]
    assert listing.title == "PEUGEOT 208 1.2 PureTech 82"
    assert listing.url == "https://www.lacentrale.fr/auto-occasion-annonce-E106123456.html"
    assert listing.external_id == "E106123456"
    assert listing.year == 2019
    assert listing.mileage == 45000
    assert listing.city == "Nantes"


def test_lacentrale_skips_malformed_hits() -> None:
    hit = {"item": {"reference": "E106123457", "title": "Peugeot 208 Like", "price": 7900}}
    state = {"search": {"hits": ["sponsored", None, 42, hit]}}
    markup = _page(f"<script>window.__INITIAL_STATE__ = {json.dumps(state)};</script>")

    listings = LaCentraleParser().parse(markup, CRITERIA)

    assert [listing.external_id for listing in listings] == ["E106123457"]


def test_lacentrale_reads_json_ld_cars() -> None:
    car = {
        "@context": "https://schema.org",
        "@type": "Car",
        "name": "Peugeot 208 Active",
        "url": "https://www.lacentrale.fr/auto-occasion-annonce-69102345678.html",
        "brand": {"@type": "Brand", "name": "Peugeot"},
        "model": "208",
        "vehicleModelDate": "2017",
        "mileageFromOdometer": {"value": "82000", "unitCode": "KMT"},
        "offers": {"price": "8900", "priceCurrency": "EUR"},
    }
    markup = _page(f'<script type="application/ld+json">{json.dumps(car)}</script>')

    listings = LaCentraleParser().parse(markup, CRITERIA)

    assert len(listings) == 1
    assert listings[0].external_id == "69102345678"
    assert listings[0].brand == "Peugeot"
    assert listings[0].price == "8900"
    assert listings[0].mileage == "82000"


def test_lacentrale_falls_back_to_annonce_links() -> None:
    markup = _page("""
        <div class="searchCard">
          <a href="/auto-occasion-annonce-69103456789.html"><h3>Peugeot 208 GT Line</h3></a>
          <span>11 500 €</span> <span>2020</span> <span>30 000 km</span>
        </div>
        <div class="searchCard">
          <a href="/auto-occasion-annonce-69103456790.html"><h3>Peugeot 208 GTi</h3></a>
          <span>19 900 €</span> <span>2021</span> <span>12 000 km</span>
        </div>
    """)

    listings = LaCentraleParser().parse(markup, CRITERIA)

    assert len(listings) == 1
    assert listings[0].title == "Peugeot 208 GT Line"
    assert listings[0].external_id == "69103456789"
    assert listings[0].price == "11 500"
    assert listings[0].year == "2020"
    assert listings[0].mileage == "30 000"


# --- ProCarLease ---

def test_procarlease_search_url() -> None:
    url = ProCarLeaseParser().search_url(CRITERIA)

    assert url.startswith("https://www.procarlease.com/vehicules-occasion?")
    assert "marque=peugeot" in url
    assert "modele=208" in url
    assert "prix_max=12000" in url


def test_procarlease_reads_vehicle_cards() -> None:
    markup = _page("""
        <div class="vehicle-card" data-id="4411" data-price="10490" data-year="2019" data-km="52000"
             data-brand="Peugeot" data-model="208">
          <a class="vehicle-link" href="/vehicule/peugeot-208-4411"><img data-src="/img/4411.jpg"></a>
          <h3 class="vehicle-title">Peugeot 208 1.5 BlueHDi 100</h3>
          <span class="vehicle-location">Bordeaux</span>
          <span class="vehicle-fuel">Diesel</span>
          <span class="vehicle-gearbox">Manuelle</span>
        </div>
        <article class="vehicle-card">
          <h3 class="vehicle-title"><a href="/vehicule/peugeot-208-4412">Peugeot 208 Allure</a></h3>
          <span class="vehicle-price">11 990 €</span>
          <span class="vehicle-year">2020</span>
          <span class="vehicle-km">41 000 km</span>
        </article>
        <div class="vehicle-card" data-id="4413" data-price="15990">
          <a class="vehicle-link" href="/vehicule/peugeot-208-4413">Peugeot 208 GT</a>
        </div>
    """)

    listings = ProCarLeaseParser().parse(markup, CRITERIA)

    assert [listing.external_id for listing in listings] == ["4411", "4412"]
    first, second = listings
    assert first.url == "https://www.procarlease.com/vehicule/peugeot-208-4411"
    assert first.image_url == "https://www.procarlease.com/img/4411.jpg"
    assert first.city == "Bordeaux"
    assert first.fuel == "Diesel"
    assert first.brand == "Peugeot"
    assert second.price == "11 990 €"
    assert second.mileage == "41 000 km"


# --- AutoScout24 ---

def test_autoscout24_search_url() -> None:
    url = AutoScout24Parser().search_url(SearchCriteria(brand="Peugeot", model="208", max_price=12000, zip_code="75011", radius_km=50))

    assert url.startswith("https://www.autoscout24.fr/lst/peugeot/208?")
    assert "priceto=12000" in url
    assert "zip=75011" in url
    assert "zipr=50" in url
    assert "page=1" in url


def test_autoscout24_reads_next_data_listings() -> None:
    listings_json = [
        {
            "id": "5f0c1e2a-aaaa-bbbb-cccc-1234567890ab",
            "url": "/offres/peugeot-208-1-2-puretech-like-5f0c1e2a",
            "vehicle": {
                "make": "Peugeot",
                "model": "208",
                "modelVersionInput": "1.2 PureTech Like",
                "fuel": "Essence",
                "transmission": "Manuelle",
            },
            "tracking": {"price": "9990", "firstRegistration": "03-2019", "mileage": "48000"},
            "location": {"city": "Marseille"},
            "images": ["https://prod.pictures.autoscout24.net/a.jpg"],
        },
    ]
    markup = _page(_next_data({"props": {"pageProps": {"listings": listings_json}}}))

    listings = AutoScout24Parser().parse(markup, CRITERIA)

    assert len(listings) == 1
    listing = listings[0]
    assert listing.title == "Peugeot 208 1.2 PureTech Like"
    assert listing.url == "https://www.autoscout24.fr/offres/peugeot-208-1-2-puretech-like-5f0c1e2a"
    assert listing.price == "9990"
    assert listing.year == "03-2019"
    assert listing.city == "Marseille"
    assert listing.gearbox == "Manuelle"


def test_autoscout24_falls_back_to_articles() -> None:
    markup = _page("""
        <article data-guid="abc-123" data-make="peugeot" data-model="208" data-price="8900"
                 data-mileage="91000" data-first-registration="06-2016" data-fuel-type="d">
          <a href="/offres/peugeot-208-abc-123"><h2>Peugeot 208 1.6 BlueHDi</h2></a>
          <span data-testid="dealer-address">69003 Lyon</span>
        </article>
    """)

    listings = AutoScout24Parser().parse(markup, CRITERIA)

    assert len(listings) == 1
    listing = listings[0]
    assert listing.external_id == "abc-123"
    assert listing.title == "Peugeot 208 1.6 BlueHDi"
    assert listing.fuel == "diesel"
    assert listing.city == "69003 Lyon"
    assert listing.mileage == "91000"


# --- LeParking ---

def test_leparking_search_url() -> None:
    url = LeParkingParser().search_url(CRITERIA, page=2)

    assert url.startswith("https://www.leparking.fr/voiture-occasion/peugeot-208.html?")
    assert "prix_max=12000" in url
    assert "page=2" in url


def test_leparking_reads_result_items() -> None:
    markup = _page("""
        <ul>
          <li class="li-result" data-id="lp-778">
            <a class="external" href="/voiture-occasion/peugeot-208-lp-778.html">
              <span class="title-block">Peugeot 208 Style</span>
            </a>
            <div class="price-block">7 900 €</div>
            <span>2016</span> <span>95 000 km</span>
            <span class="location">Toulouse</span>
          </li>
          <li class="li-result" data-id="lp-779">
            <a class="external" href="/voiture-occasion/peugeot-208-lp-779.html">
              <span class="title-block">Peugeot 208 GTi</span>
            </a>
            <div class="price-block">16 500 €</div>
          </li>
        </ul>
    """)

    listings = LeParkingParser().parse(markup, CRITERIA)

    assert len(listings) == 1
    listing = listings[0]
    assert listing.external_id == "lp-778"
    assert listing.title == "Peugeot 208 Style"
    assert listing.price == "7 900 €"
    assert listing.year == "2016"
    assert listing.mileage == "95 000"
    assert listing.city == "Toulouse"


# --- ParuVendu ---

def test_paruvendu_search_url() -> None:
    url = ParuVenduParser().search_url(CRITERIA, page=2)

    assert url.startswith("https://www.paruvendu.fr/a/voiture-occasion/?")
    assert "tbMar=Peugeot" in url
    assert "px1=12000" in url
    assert "p=2" in url


def test_paruvendu_reads_ad_blocks() -> None:
    markup = _page("""
        <div class="ergov3-annonce">
          <a href="/a/voiture-occasion/peugeot/208/1234567890" title="Peugeot 208"><h3>Peugeot 208 Active 1.2</h3></a>
          <div class="ergov3-priceannonce">8 450 €</div>
          <p>2017 - 88 000 km - Diesel</p>
          <span class="ville">Lille</span>
        </div>
    """)

    listings = ParuVenduParser().parse(markup, CRITERIA)

    assert len(listings) == 1
    listing = listings[0]
    assert listing.title == "Peugeot 208 Active 1.2"
    assert listing.external_id == "1234567890"
    assert listing.price == "8 450"
    assert listing.year == "2017"
    assert listing.mileage == "88 000"
    assert listing.city == "Lille"


def test_paruvendu_scans_links_only_on_large_pages() -> None:
    link = '<p><a href="/a/voiture-occasion/peugeot/208/1234567891" title="Peugeot 208 Like">voir</a> 9 900 €</p>'
    padding = f"<div>{'x' * 60000}</div>"

    large = ParuVenduParser().parse(_page(link + padding), CRITERIA)
    small = ParuVenduParser().parse(_page(link), CRITERIA)

    assert [listing.title for listing in large] == ["Peugeot 208 Like"]
    assert large[0].price == "9 900"
    assert small == []


def test_records_without_title_or_link_are_dropped() -> None:
    markup = _page("""
        <div class="ergov3-annonce"><h3>Pas de lien</h3></div>
        <div class="ergov3-annonce"><a href="/a/voiture-occasion/x/1234567892"></a></div>
    """)

    assert ParuVenduParser().parse(markup, CRITERIA) == []


# --- TransakAuto ---

def test_transakauto_search_url() -> None:
    url = TransakAutoParser().search_url(CRITERIA)

    assert url == "https://annonces.transakauto.com/?marque=peugeot&modele=208&prix_max=12000"


def test_transakauto_reads_listing_list_from_next_data() -> None:
    payload = {"props": {"pageProps": {"listings": [
        {"id": 501, "title": "Peugeot 208 Active", "url": "/annonce/501", "price": 8700,
         "year": 2016, "mileage": 91000, "ville": "Marseille"},
    ]}}}

    listings = TransakAutoParser().parse(_page(_next_data(payload)), CRITERIA)

    assert len(listings) == 1
    assert listings[0].url == "https://annonces.transakauto.com/annonce/501"
    assert listings[0].external_id == "501"
    assert listings[0].city == "Marseille"


def test_transakauto_reads_json_ld_item_list() -> None:
    item_list = {
        "@type": "ItemList",
        "itemListElement": [
            {"@type": "ListItem", "item": {
                "name": "Peugeot 208 Like",
                "url": "https://annonces.transakauto.com/annonce/777",
                "offers": {"price": "7900"},
            }},
        ],
    }
    markup = _page(f'<script type="application/ld+json">{json.dumps(item_list)}</script>')

    listings = TransakAutoParser().parse(markup, CRITERIA)

    assert [(listing.title, listing.price) for listing in listings] == [("Peugeot 208 Like", "7900")]


# --- Aramisauto ---

def test_aramisauto_search_url() -> None:
    url = AramisautoParser().search_url(CRITERIA)

    assert url.startswith("https://www.aramisauto.com/acheter/recherche?")
    assert "makes%5B%5D=PEUGEOT" in url
    assert "models%5B%5D=208" in url
    assert "priceMax=12000" in url


def test_aramisauto_reads_vehicle_cards() -> None:
    markup = _page("""
        <div class="vehicle-card">
          <a href="/acheter/peugeot/208/allure/1234567" title="Peugeot 208 Allure"><h3>Peugeot 208 Allure</h3></a>
          <span>10 490 €</span> <span>2019</span> <span>42 000 km</span>
          <span class="city">Lyon</span>
          <img src="/img/1.jpg">
        </div>
        <div class="vehicle-card">
          <a href="/acheter/peugeot/208/gt/1234568"><h3>Peugeot 208 GT</h3></a>
          <span>14 990 €</span>
        </div>
    """)

    listings = AramisautoParser().parse(markup, CRITERIA)

    assert len(listings) == 1
    listing = listings[0]
    assert listing.url == "https://www.aramisauto.com/acheter/peugeot/208/allure/1234567"
    assert listing.external_id == "1234567"
    assert (listing.price, listing.year, listing.mileage) == ("10 490", "2019", "42 000")
    assert listing.city == "Lyon"
    assert listing.image_url == "https://www.aramisauto.com/img/1.jpg"


# --- Kyump ---

def test_kyump_search_url() -> None:
    url = KyumpParser().search_url(CRITERIA)

    assert url == "https://www.kyump.com/voiture-occasion?marque=PEUGEOT&modele=208&prixMax=12000"


def test_kyump_reads_cards_once_when_nested_in_articles() -> None:
    markup = _page("""
        <article>
          <div class="car-card">
            <a href="/voiture-occasion/peugeot-208/12345678.html"><h2>Peugeot 208 Signature</h2></a>
            <span>11 200 €</span>
          </div>
        </article>
    """)

    listings = KyumpParser().parse(markup, CRITERIA)

    assert [listing.external_id for listing in listings] == ["12345678"]
    assert listings[0].price == "11 200"


def test_kyump_scans_links_only_on_large_pages() -> None:
    link = (
        '<p><a href="/voiture-occasion/peugeot-208/98765432.html" title="Peugeot 208 Style">voir</a>'
        " 9 200 € 2016 75 000 km</p>"
    )
    padding = f"<div>{'x' * 60000}</div>"

    large = KyumpParser().parse(_page(link + padding), CRITERIA)
    small = KyumpParser().parse(_page(link), CRITERIA)

    assert [(listing.title, listing.mileage) for listing in large] == [("Peugeot 208 Style", "75 000")]
    assert large[0].external_id == "98765432"
    assert small == []
