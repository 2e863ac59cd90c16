from scrapers.aramisauto import AramisautoParser
from scrapers.autoscout24 import AutoScout24Parser
from scrapers.kyump import KyumpParser
from scrapers.lacentrale import LaCentraleParser
from scrapers.leboncoin import LeBonCoinParser
from scrapers.leparking import LeParkingParser
from scrapers.paruvendu import ParuVenduParser
from scrapers.procarlease import ProCarLeaseParser
from scrapers.transakauto import TransakAutoParser

# Source key -> parser class
PARSERS = {
    parser.key: parser
    for parser in (
        LeBonCoinParser,
        LaCentraleParser,
        ProCarLeaseParser,
        AutoScout24Parser,
        LeParkingParser,
        ParuVenduParser,
        TransakAutoParser,
        AramisautoParser,
        KyumpParser,
    )
}
