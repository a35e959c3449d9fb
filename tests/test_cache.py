from qnet.cache import CacheManager


def test_full_user_update_is_found():
    cache = CacheManager()
    cache.update_user("K1ABC", "K1ABC  B", "N0GW   G", "10.0.0.9", "2020-01-01")
    assert cache.find_user_data("K1ABC") == ("K1ABC  B", "N0GW   G", "10.0.0.9")
    assert cache.find_user_addr("K1ABC") == "10.0.0.9"
    assert cache.find_user_repeater("K1ABC") == "K1ABC  B"
    assert cache.find_user_time("K1ABC") == "2020-01-01"


def test_gateway_derived_from_repeater_when_unknown():
    cache = CacheManager()
    cache.update_user("K1ABC", "N7TAE  B", "", "", "")
    assert cache.find_user_data("K1ABC") == ("N7TAE  B", "N7TAE  G", "")


def test_matching_gateway_prefix_not_stored_but_address_is():
    cache = CacheManager()
    cache.update_user("K1ABC", "N7TAE  B", "N7TAE  G", "10.1.1.1", "")
    assert cache.find_rptr_data("N7TAE  B") == ("N7TAE  G", "10.1.1.1")
    cache.erase_gate("N7TAE  G")
    assert cache.find_rptr_data("N7TAE  B") == ("N7TAE  G", "")


def test_time_kept_even_without_repeater():
    cache = CacheManager()
    cache.update_user("K1ABC", "", "", "", "12:00")
    assert cache.find_user_time("K1ABC") == "12:00"
    assert cache.find_user_repeater("K1ABC") == ""


def test_empty_user_ignored():
    cache = CacheManager()
    cache.update_user("", "N7TAE  B", "N7TAE  G", "10.1.1.1", "now")
    assert cache.find_user_time("") == ""
    assert cache.find_user_data("") == ("", "", "")


def test_update_rptr_without_address():
    cache = CacheManager()
    cache.update_rptr("K1ABC  C", "N0GW   G", "")
    assert cache.find_rptr_data("K1ABC  C") == ("N0GW   G", "")
    cache.update_rptr("K1ABC  C", "N0GW   G", "10.2.2.2")
    assert cache.find_rptr_data("K1ABC  C") == ("N0GW   G", "10.2.2.2")


def test_update_gate_replaces_underscores():
    cache = CacheManager()
    cache.update_gate("N7TAE__G", "10.3.3.3")
    assert cache.find_gate_address("N7TAE  G") == "10.3.3.3"
    assert cache.find_gate_address("N7TAE__G") == ""


def test_names_and_server_user():
    cache = CacheManager()
    assert cache.find_server_user() == ""
    cache.update_name("alice", "al")
    cache.update_name("s-server1", "srv")
    cache.update_name("s-server2", "srv2")
    assert cache.find_name_nick("alice") == "al"
    assert cache.find_server_user() == "s-server1"
    cache.erase_name("s-server1")
    assert cache.find_server_user() == "s-server2"


def test_clear_gate_drops_addresses_and_names():
    cache = CacheManager()
    cache.update_gate("N7TAE  G", "10.3.3.3")
    cache.update_name("bob", "b")
    cache.clear_gate()
    assert cache.find_gate_address("N7TAE  G") == ""
    assert cache.find_name_nick("bob") == ""


def test_empty_values_ignored_in_name_and_gate():
    cache = CacheManager()
    cache.update_name("carol", "")
    cache.update_gate("N7TAE  G", "")
    assert cache.find_name_nick("carol") == ""
    assert cache.find_gate_address("N7TAE  G") == ""